"""
Tests for the FastAPI surface, with a scripted model and stub books.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from assistant.xero import XeroBooks, XeroClient
from main import create_app

from conftest import EXTRACTION_REPLY, FakeLLM, StubBooks, intent_json


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def stub():
    return StubBooks()


@pytest.fixture
def client(make_assistant, llm, stub):
    app = create_app(assistant=make_assistant(llm, stub), check_model=False)
    with TestClient(app) as c:
        yield c


class TestRootAndHealth:
    """Service endpoints"""

    def test_root(self, client):
        assert client.get("/").json() == {"message": "Invoice Assistant API is running"}

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["ok"] is True
        assert body["model"]["available"] is None
        assert body["memory"] == {"max_entries": 20, "context_entries": 5}

    def test_request_id_header(self, client):
        resp = client.get("/", headers={"X-Request-Id": "req-1"})
        assert resp.headers["X-Request-Id"] == "req-1"


class TestChat:
    """Chat endpoints"""

    def test_message(self, client, llm, stub):
        llm.push(intent_json("CREATE_INVOICE", client="Jane", amount="500"))

        resp = client.post(
            "/chat/message",
            json={"message": "Create an invoice for Jane for $500", "conversationId": "c1"},
            headers={"X-User-Id": "u1"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["intent"] == "CREATE_INVOICE"
        assert body["data"] == {"id": 7}
        assert body["conversationId"] == "c1"
        assert stub.invoices[0].user_id == "u1"

    def test_model_failure_still_answers(self, client, llm):
        llm.push(ConnectionError("connection refused"))

        resp = client.post("/chat/message", json={"message": "show my balance sheet"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["intent"] == "GENERATE_BALANCE_SHEET"
        assert body["failure"] == "model_unavailable"
        assert client.get("/health").json()["model"]["available"] is False

    def test_empty_message_rejected(self, client):
        assert client.post("/chat/message", json={"message": ""}).status_code == 422

    def test_clear(self, client, memory, llm):
        llm.push(intent_json("GENERAL_INQUIRY"), "Hello!")
        client.post("/chat/message", json={"message": "hi", "conversationId": "c1"}, headers={"X-User-Id": "u1"})
        assert memory.history("u1", "c1")

        resp = client.post("/chat/clear", json={"conversationId": "c1"}, headers={"X-User-Id": "u1"})

        assert resp.json()["message"] == "Conversation cleared"
        assert memory.history("u1", "c1") == []


class TestUpload:
    """Upload endpoints"""

    DOC = b"Invoice INV-42 to Acme Corp. Total due: $1,200.00 on 01/03/2024"

    def test_invoice_auto_create(self, client, llm, stub):
        llm.push(EXTRACTION_REPLY)

        resp = client.post(
            "/upload/invoice",
            files={"document": ("invoice.txt", self.DOC, "text/plain")},
            data={"auto_create": "true"},
            headers={"X-User-Id": "u1"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["autoCreated"] is True
        assert body["invoice"] == {"id": 7}
        assert body["extractedData"]["clientName"] == "Acme Corp"

    def test_invoice_pending_then_confirm(self, client, llm, stub):
        llm.push(EXTRACTION_REPLY)
        resp = client.post(
            "/upload/invoice",
            files={"document": ("invoice.txt", self.DOC, "text/plain")},
            data={"conversationId": "c1"},
            headers={"X-User-Id": "u1"},
        )
        assert resp.json()["pending"] is True
        assert stub.invoices == []

        reply = client.post(
            "/chat/message", json={"message": "yes", "conversationId": "c1"}, headers={"X-User-Id": "u1"}
        ).json()

        assert reply["data"] == {"id": 7}
        assert len(stub.invoices) == 1

    def test_unsupported_file(self, client):
        resp = client.post("/upload/invoice", files={"document": ("a.zip", b"PK", "application/zip")})
        assert resp.status_code == 400

    def test_unreadable_document(self, client):
        resp = client.post("/upload/invoice", files={"document": ("a.txt", b"hi", "text/plain")})
        assert resp.status_code == 400

    def test_extraction_failure(self, client, llm):
        llm.push("not json")
        resp = client.post("/upload/extract", files={"document": ("invoice.txt", self.DOC, "text/plain")})
        assert resp.status_code == 502

    def test_extract(self, client, llm):
        llm.push(EXTRACTION_REPLY)

        resp = client.post("/upload/extract", files={"document": ("invoice.txt", self.DOC, "text/plain")})

        body = resp.json()
        assert body["message"] == "Data extracted successfully"
        assert body["fileName"] == "invoice.txt"
        assert body["fileSize"] == len(self.DOC)

    def test_supported_types(self, client):
        body = client.get("/upload/supported-types").json()
        assert "application/pdf" in body["supportedTypes"]
        assert body["maxFileSize"] == "10MB"


class TestLedger:
    """Invoice and transaction listings"""

    @pytest.fixture
    def ledger_client(self, make_assistant, llm, books):
        app = create_app(assistant=make_assistant(llm, books), check_model=False)
        with TestClient(app) as c:
            yield c

    def test_invoices_scoped_to_user(self, ledger_client, llm):
        llm.push(
            intent_json("CREATE_INVOICE", client="Jane", amount="500"),
            intent_json("CREATE_INVOICE", client="Bob", amount="75"),
        )
        ledger_client.post("/chat/message", json={"message": "bill Jane $500"}, headers={"X-User-Id": "u1"})
        ledger_client.post("/chat/message", json={"message": "bill Bob $75"}, headers={"X-User-Id": "u2"})

        body = ledger_client.get("/invoices", headers={"X-User-Id": "u1"}).json()

        assert body["count"] == 1
        assert body["invoices"][0]["customer_name"] == "Jane"
        assert body["invoices"][0]["invoice_number"] == "INV-0001"

    def test_transactions_filtered_by_type(self, ledger_client, llm):
        llm.push(
            intent_json("RECORD_TRANSACTION", amount="-20", description="coffee"),
            intent_json("RECORD_TRANSACTION", amount="300", description="consulting fee"),
        )
        headers = {"X-User-Id": "u1"}
        ledger_client.post("/chat/message", json={"message": "spent $20 on coffee"}, headers=headers)
        ledger_client.post("/chat/message", json={"message": "received $300"}, headers=headers)

        body = ledger_client.get("/transactions", params={"type": "expense"}, headers=headers).json()

        assert body["count"] == 1
        assert body["transactions"][0]["description"] == "coffee"

    def test_limit_must_be_positive(self, ledger_client):
        assert ledger_client.get("/invoices", params={"limit": 0}).status_code == 422


class TestLifespan:
    """Startup and shutdown"""

    def test_xero_client_closed_on_shutdown(self, make_assistant, llm):
        xero = XeroClient(
            access_token="token",
            tenant_id="tenant",
            base_url="https://xero.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
        )
        app = create_app(assistant=make_assistant(llm, XeroBooks(client=xero)), check_model=False)

        with TestClient(app):
            assert not xero._http.is_closed
        assert xero._http.is_closed
