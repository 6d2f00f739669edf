"""
Tests for the regex pattern extractor.
"""

from assistant.models import ExtractedFinancialData
from assistant.patterns import (
    DEFAULT_DESCRIPTION,
    extract_client_info,
    extract_description,
    extract_financial_data,
    extract_invoice_details,
    normalize_date,
)


class TestAmount:
    """Amount extraction"""

    def test_dollar_amount(self):
        assert extract_financial_data("Create an invoice for Jane for $500").amount == "500"

    def test_dollar_amount_with_thousands_and_cents(self):
        assert extract_financial_data("Bill Acme $1,500.50 for design").amount == "1500.50"

    def test_dollar_amount_preferred_over_bare_number(self):
        data = extract_financial_data("Invoice 3 hours of work for Bob at $1500")
        assert data.amount == "1500"

    def test_bare_number(self):
        assert extract_financial_data("I received 250 from Acme").amount == "250"

    def test_negative_amount_keeps_sign(self):
        assert extract_financial_data("record -$20 for coffee").amount == "-20"

    def test_sign_after_dollar(self):
        data = extract_financial_data("I spent $-20 on coffee")
        assert data.amount == "-20"
        assert data.description == "i spent on coffee"

    def test_no_amount(self):
        assert extract_financial_data("show me my balance sheet").amount is None

    def test_date_digits_are_not_amounts(self):
        assert extract_financial_data("what happened on 15/03/2024").amount is None


class TestDate:
    """Date normalisation"""

    def test_iso_date(self):
        assert normalize_date("2024-03-15") == "2024-03-15"

    def test_day_first(self):
        assert normalize_date("05/03/2024") == "2024-03-05"

    def test_month_first_when_day_first_impossible(self):
        assert normalize_date("12/25/2024") == "2024-12-25"

    def test_two_digit_year(self):
        assert normalize_date("1-2-24") == "2024-02-01"

    def test_invalid_date(self):
        assert normalize_date("45/45/2024") is None
        assert normalize_date("not a date") is None
        assert normalize_date(None) is None

    def test_date_extracted_from_message(self):
        assert extract_financial_data("Invoice Jane $500 on 2024-01-31").date == "2024-01-31"


class TestClient:
    """Client name extraction"""

    def test_client_stops_at_connective(self):
        assert extract_financial_data("Create an invoice for Jane for $500").client == "Jane"

    def test_two_word_client(self):
        assert extract_financial_data("Send an invoice to John Smith for $300").client == "John Smith"

    def test_skip_phrases(self):
        assert extract_financial_data("I spent $50 on supplies for the office").client is None


class TestOtherFields:
    """Email, invoice number, description"""

    def test_email(self):
        data = extract_financial_data("Bill jane@example.com $100")
        assert data.email == "jane@example.com"

    def test_invoice_number(self):
        data = extract_financial_data("Mark invoice #1234 as paid")
        assert data.invoice_number == "1234"
        assert data.amount is None

    def test_service_description(self):
        data = extract_financial_data("Create an invoice for Jane for $500 for consulting")
        assert data.description == "consulting"

    def test_grouped_amount_removed_from_description(self):
        data = extract_financial_data("I spent $1,200 on office rent")
        assert data.amount == "1200"
        assert data.description == "i spent on office rent"

    def test_grouped_amount_with_cents_removed(self):
        data = extract_financial_data("Create invoice for John Smith $2,500.00 due 12/25/2024")
        assert "2,500" not in data.description
        assert "2500" not in data.description

    def test_default_description(self):
        data = ExtractedFinancialData(client="Jane", amount="500")
        assert extract_description("Create an invoice", data) == DEFAULT_DESCRIPTION

    def test_never_raises(self):
        assert isinstance(extract_financial_data(None), ExtractedFinancialData)


class TestSupplementaryExtractors:
    """Client info and invoice details helpers"""

    def test_client_info_before_keyword(self):
        assert extract_client_info("Jane Doe owes us money") == {"name": "Jane Doe"}

    def test_client_info_after_keyword(self):
        assert extract_client_info("customer Acme Corp") == {"name": "Acme Corp"}

    def test_client_info_missing(self):
        assert extract_client_info("nothing here") == {}

    def test_invoice_details(self):
        details = extract_invoice_details("Payment due on 15/04/2024, net 30 days")
        assert details == {"due_date": "2024-04-15", "payment_terms": "Net 30 days"}
