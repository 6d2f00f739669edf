"""
- Turn an uploaded invoice document into plain text:
    * pdf: text layer via pdfplumber; OCR fallback (poppler + tesseract) for scans
    * docx/xlsx/csv/html/txt/images: best-effort text extraction
- File validation (type + size) for the upload endpoints
- Any parse failure raises DocumentParseError; callers decide how to answer
"""

# =========================
# Imports
# =========================
import logging
import os
from io import BytesIO
from typing import Dict, List, Optional

import pandas as pd
import pdfplumber
import pytesseract
from bs4 import BeautifulSoup
from docx import Document
from pdf2image import convert_from_bytes
from PIL import Image, ImageEnhance

from . import config
from .errors import DocumentParseError

log = logging.getLogger("assistant.documents")

SUPPORTED_TYPES: Dict[str, str] = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "text/csv": "csv",
    "text/html": "html",
    "text/plain": "txt",
    "image/png": "image",
    "image/jpeg": "image",
    "image/tiff": "image",
    "image/webp": "image",
}

_EXTENSIONS: Dict[str, str] = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".xlsx": "xlsx",
    ".csv": "csv",
    ".htm": "html",
    ".html": "html",
    ".txt": "txt",
    ".png": "image",
    ".jpg": "image",
    ".jpeg": "image",
    ".tif": "image",
    ".tiff": "image",
    ".webp": "image",
}


# =========================
# HTML → plain text
# =========================
def _html_to_text(html: Optional[str]) -> str:
    if not html:
        return ""
    soup = BeautifulSoup(html, "lxml")
    return soup.get_text(separator=" ", strip=True)


# =========================
# Format extractors
# =========================
def _extract_pdf_text_layer(pdf_bytes: bytes) -> str:
    out = []
    with pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
        for page in pdf.pages:
            t = page.extract_text()
            if t:
                out.append(t)
    return "\n".join(out).strip()


def _prepare_for_ocr(img: Image.Image) -> Image.Image:
    img = img.convert("L")
    return ImageEnhance.Contrast(img).enhance(2.0)


def _ocr_pdf(pdf_bytes: bytes, dpi: int = 300) -> str:
    """OCR for scanned PDFs (requires poppler & tesseract on the host)."""
    lines: List[str] = []
    for img in convert_from_bytes(pdf_bytes, dpi=dpi):
        lines.extend(pytesseract.image_to_string(_prepare_for_ocr(img)).split("\n"))
    return "\n".join(lines).strip()


def _ocr_image(img_bytes: bytes) -> str:
    img = Image.open(BytesIO(img_bytes))
    return pytesseract.image_to_string(_prepare_for_ocr(img)).strip()


def _extract_pdf(pdf_bytes: bytes) -> str:
    try:
        text = _extract_pdf_text_layer(pdf_bytes)
    except Exception as e:
        log.warning("pdf_text_layer_failed", extra={"kv": {"error": str(e)}})
        text = ""
    if text:
        return text
    log.info("pdf_ocr_fallback")
    return _ocr_pdf(pdf_bytes)


def _extract_docx(docx_bytes: bytes) -> str:
    doc = Document(BytesIO(docx_bytes))
    parts = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            parts.append("\t".join(cell.text for cell in row.cells))
    return "\n".join(parts).strip()


def _extract_xlsx(xlsx_bytes: bytes) -> str:
    out: List[str] = []
    xls = pd.ExcelFile(BytesIO(xlsx_bytes))
    for sheet in xls.sheet_names:
        df = pd.read_excel(xls, sheet_name=sheet, dtype=str)
        out.append(f"=== Sheet: {sheet} ===")
        out.append(df.fillna("").to_string(index=False))
    return "\n".join(out).strip()


def _extract_csv(csv_bytes: bytes) -> str:
    df = pd.read_csv(BytesIO(csv_bytes), dtype=str)
    return df.fillna("").to_string(index=False)


def _extract_html(html_bytes: bytes) -> str:
    return _html_to_text(html_bytes.decode(errors="ignore"))


def _extract_txt(txt_bytes: bytes) -> str:
    return txt_bytes.decode(errors="ignore").strip()


_EXTRACTORS = {
    "pdf": _extract_pdf,
    "docx": _extract_docx,
    "xlsx": _extract_xlsx,
    "csv": _extract_csv,
    "html": _extract_html,
    "txt": _extract_txt,
    "image": _ocr_image,
}


def _resolve_kind(file_name: str, mime_type: Optional[str]) -> Optional[str]:
    kind = SUPPORTED_TYPES.get((mime_type or "").split(";")[0].strip().lower())
    if kind:
        return kind
    _, ext = os.path.splitext((file_name or "").lower())
    return _EXTENSIONS.get(ext)


# =========================
# Public API
# =========================
def parse_document(file_path: str, mime_type: Optional[str] = None) -> str:
    """Return the plain text of the document at ``file_path``.

    The format comes from ``mime_type`` when it is a supported type, otherwise
    from the file extension.
    """
    kind = _resolve_kind(file_path, mime_type)
    if kind is None:
        raise DocumentParseError(f"Unsupported file type: {mime_type or os.path.basename(file_path)}")

    try:
        with open(file_path, "rb") as fh:
            data = fh.read()
    except OSError as e:
        raise DocumentParseError(f"Could not read document: {e}") from e

    try:
        text = _EXTRACTORS[kind](data)
    except Exception as e:
        log.error("document_parse_failed", extra={"kv": {"kind": kind, "error": str(e)}})
        raise DocumentParseError(f"Failed to parse {kind} document: {e}") from e

    log.info("document_parsed", extra={"kv": {"kind": kind, "chars": len(text)}})
    return text


def validate_file(file_name: str, mime_type: Optional[str], size: int) -> List[str]:
    errors: List[str] = []
    if _resolve_kind(file_name, mime_type) is None:
        errors.append(f"Unsupported file type: {mime_type or file_name}")
    if size > config.UPLOAD_MAX_BYTES:
        errors.append(f"File too large: maximum size is {config.UPLOAD_MAX_BYTES // (1024 * 1024)}MB")
    if size == 0:
        errors.append("File is empty")
    return errors


def get_supported_types() -> List[str]:
    return sorted(SUPPORTED_TYPES)
