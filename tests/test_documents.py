"""
Tests for document parsing and upload validation.
"""

import pandas as pd
import pytest
from docx import Document

from assistant import config
from assistant.documents import get_supported_types, parse_document, validate_file
from assistant.errors import DocumentParseError


class TestParseDocument:
    """Per-format text extraction"""

    def test_txt(self, tmp_path):
        path = tmp_path / "invoice.txt"
        path.write_text("Invoice 12 for Acme Corp, total $300")
        assert parse_document(str(path), "text/plain") == "Invoice 12 for Acme Corp, total $300"

    def test_csv(self, tmp_path):
        path = tmp_path / "invoice.csv"
        path.write_text("client,amount\nAcme Corp,300\n")
        text = parse_document(str(path), "text/csv")
        assert "Acme Corp" in text
        assert "300" in text

    def test_html(self, tmp_path):
        path = tmp_path / "invoice.html"
        path.write_text("<html><body><h1>Invoice</h1><p>Total: <b>$300</b></p></body></html>")
        text = parse_document(str(path), "text/html")
        assert "Invoice" in text
        assert "<b>" not in text
        assert "$300" in text

    def test_docx(self, tmp_path):
        path = tmp_path / "invoice.docx"
        doc = Document()
        doc.add_paragraph("Invoice for Acme Corp")
        table = doc.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "Total"
        table.rows[0].cells[1].text = "$300"
        doc.save(str(path))

        text = parse_document(str(path), None)
        assert "Invoice for Acme Corp" in text
        assert "Total\t$300" in text

    def test_xlsx(self, tmp_path):
        path = tmp_path / "invoice.xlsx"
        pd.DataFrame({"client": ["Acme Corp"], "amount": ["300"]}).to_excel(path, index=False, sheet_name="Bill")

        text = parse_document(str(path), None)
        assert "=== Sheet: Bill ===" in text
        assert "Acme Corp" in text

    def test_extension_used_when_mime_unknown(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("plain text body")
        assert parse_document(str(path), "application/octet-stream") == "plain text body"

    def test_unsupported_type(self, tmp_path):
        path = tmp_path / "archive.zip"
        path.write_bytes(b"PK\x03\x04")
        with pytest.raises(DocumentParseError):
            parse_document(str(path), "application/zip")

    def test_missing_file(self, tmp_path):
        with pytest.raises(DocumentParseError):
            parse_document(str(tmp_path / "nope.txt"), "text/plain")

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "broken.docx"
        path.write_bytes(b"not a zip archive")
        with pytest.raises(DocumentParseError):
            parse_document(str(path), None)


class TestValidateFile:
    """Upload checks"""

    def test_valid(self):
        assert validate_file("invoice.pdf", "application/pdf", 1024) == []

    def test_unsupported(self):
        errors = validate_file("archive.zip", "application/zip", 1024)
        assert len(errors) == 1
        assert "Unsupported" in errors[0]

    def test_too_large(self):
        errors = validate_file("invoice.pdf", "application/pdf", config.UPLOAD_MAX_BYTES + 1)
        assert any("too large" in e for e in errors)

    def test_empty(self):
        assert validate_file("invoice.pdf", "application/pdf", 0) == ["File is empty"]

    def test_supported_types(self):
        types = get_supported_types()
        assert "application/pdf" in types
        assert "text/csv" in types
