"""
Tests for the Xero client and the Xero-backed ledger, using
``httpx.MockTransport`` in place of the real API.
"""

import json

import httpx
import pytest

from assistant.errors import ExternalOperationError
from assistant.models import InvoiceCreationInput
from assistant.xero import XeroBooks, XeroClient, XeroInvoice, build_xero_invoice


def _client(handler, token="token-123", tenant="tenant-1") -> XeroClient:
    return XeroClient(
        access_token=token,
        tenant_id=tenant,
        base_url="https://xero.test",
        transport=httpx.MockTransport(handler),
    )


def _input(**overrides) -> InvoiceCreationInput:
    data = {"client": "Jane", "amount": 500, "description": "design work", "date": "2024-01-15", "user_id": "u1"}
    data.update(overrides)
    return InvoiceCreationInput(**data)


class TestSchema:
    """Invoice payload defaults and mapping"""

    def test_defaults(self):
        inv = XeroInvoice()
        assert inv.Type == "ACCREC"
        assert inv.Status == "SUBMITTED"
        assert inv.LineAmountTypes == "Inclusive"
        assert inv.Contact.Name == "Unknown Client"
        assert inv.LineItems[0].AccountCode == "200"
        assert inv.LineItems[0].TaxType == "OUTPUT"

    def test_build_from_input(self):
        inv = build_xero_invoice(_input(), "INV-0001", "USD")
        assert inv.Contact.Name == "Jane"
        assert inv.DateString == "2024-01-15"
        assert inv.DueDateString == "2024-02-14"
        assert inv.Total == "500.00"
        assert inv.LineItems[0].UnitAmount == "500.00"
        assert inv.LineItems[0].Description == "design work"


class TestClient:
    """HTTP behaviour"""

    async def test_create_invoice_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"Invoices": [{"InvoiceID": "abc-123"}]})

        client = _client(handler)
        result = await client.create_invoice(build_xero_invoice(_input(), "INV-0001", "USD"))

        assert result == {"InvoiceID": "abc-123"}
        assert seen["url"] == "https://xero.test/api.xro/2.0/Invoices"
        assert seen["headers"]["Authorization"] == "Bearer token-123"
        assert seen["headers"]["xero-tenant-id"] == "tenant-1"
        assert seen["body"]["Invoices"][0]["Contact"]["Name"] == "Jane"
        await client.aclose()

    async def test_http_error_maps_to_external_error(self):
        client = _client(lambda request: httpx.Response(400, text="ValidationException"))
        with pytest.raises(ExternalOperationError, match="ValidationException"):
            await client.create_invoice(XeroInvoice())

    async def test_empty_response(self):
        client = _client(lambda request: httpx.Response(200, json={"Invoices": []}))
        with pytest.raises(ExternalOperationError):
            await client.create_invoice(XeroInvoice())

    async def test_missing_token(self):
        client = _client(lambda request: httpx.Response(200, json={}), token="")
        with pytest.raises(ExternalOperationError, match="XERO_ACCESS_TOKEN"):
            await client.create_invoice(XeroInvoice())

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(ExternalOperationError):
            await _client(handler).create_invoice(XeroInvoice())

    async def test_get_tenant_id(self):
        client = _client(lambda request: httpx.Response(200, json=[{"tenantId": "t-9"}]))
        assert await client.get_tenant_id() == "t-9"

    async def test_no_tenant(self):
        client = _client(lambda request: httpx.Response(200, json=[]))
        with pytest.raises(ExternalOperationError):
            await client.get_tenant_id()


class TestXeroBooks:
    """Ledger that mirrors invoices to Xero"""

    async def test_invoice_recorded_with_external_id(self):
        client = _client(lambda request: httpx.Response(200, json={"Invoices": [{"InvoiceID": "abc-123"}]}))
        books = XeroBooks(client=client)

        invoice = await books.create_invoice(_input())

        assert invoice.external_id == "abc-123"
        assert invoice.invoice_number == "INV-0001"
        assert len(books.invoices) == 1

    async def test_tenant_resolved_before_first_invoice(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.path, request.headers.get("xero-tenant-id")))
            if request.url.path == "/connections":
                return httpx.Response(200, json=[{"tenantId": "t-9"}])
            return httpx.Response(200, json={"Invoices": [{"InvoiceID": "abc-123"}]})

        books = XeroBooks(client=_client(handler, tenant=""))
        await books.create_invoice(_input())
        await books.create_invoice(_input(client="Bob"))

        assert seen == [
            ("/connections", None),
            ("/api.xro/2.0/Invoices", "t-9"),
            ("/api.xro/2.0/Invoices", "t-9"),
        ]

    async def test_failure_records_nothing(self):
        client = _client(lambda request: httpx.Response(500, text="boom"))
        books = XeroBooks(client=client)

        with pytest.raises(ExternalOperationError):
            await books.create_invoice(_input())
        assert books.invoices == []

    async def test_transactions_stay_local(self):
        def handler(request):
            raise AssertionError("no HTTP call expected")

        books = XeroBooks(client=_client(handler))
        txn = await books.record_transaction(
            {"amount": 20, "description": "coffee", "date": "2024-01-01", "type": "income", "user_id": "u1"}
        )
        assert txn.transaction_id == "TXN-000001"
