"""
Shared fakes for the assistant tests: a scripted LLM and a recording
accounting backend.
"""

import json
from typing import Any, Dict, List, Optional

import pytest

from assistant.bookkeeping import InMemoryBooks
from assistant.memory import ConversationMemory
from assistant.ollama_llm import ModelStatus
from assistant.pipeline import Assistant, AssistantContext


class FakeLLM:
    """Returns scripted replies in order; an Exception in the script is raised."""

    def __init__(self, *replies: Any):
        self.replies: List[Any] = list(replies)
        self.calls: List[Dict[str, Any]] = []

    def push(self, *replies: Any) -> None:
        self.replies.extend(replies)

    async def invoke(self, system_prompt, user_prompt, temperature=None, num_predict=None) -> str:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "num_predict": num_predict,
        })
        if not self.replies:
            raise RuntimeError("FakeLLM script exhausted")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class StubBooks:
    """Records calls and returns canned dict records."""

    def __init__(self, invoice: Optional[Dict[str, Any]] = None, fail: Optional[Exception] = None):
        self.invoice = invoice if invoice is not None else {"id": 7}
        self.fail = fail
        self.invoices: List[Any] = []
        self.transactions: List[Any] = []

    async def create_invoice(self, data):
        if self.fail:
            raise self.fail
        self.invoices.append(data)
        return dict(self.invoice)

    async def record_transaction(self, data):
        if self.fail:
            raise self.fail
        self.transactions.append(data)
        return {"id": len(self.transactions), "transaction_id": f"TXN-{len(self.transactions):06d}", "type": data.type}

    async def generate_balance_sheet(self, user_id):
        if self.fail:
            raise self.fail
        return {
            "totalRevenue": 1500,
            "totalExpenses": 100,
            "netIncome": 1400,
            "outstandingInvoices": 2,
        }

    async def list_invoices(self, user_id, status=None, limit=None):
        return [dict(self.invoice)]

    async def list_transactions(self, user_id, type=None, limit=None):
        return []


EXTRACTION_REPLY = (
    '{"invoiceNumber": "INV-42", "invoiceDate": "2024-03-01", "dueDate": null, '
    '"clientName": "Acme Corp", "totalAmount": "1,200.00", "subtotal": null, "taxAmount": null, '
    '"description": "Web design", "currency": "USD", "confidence": 0.9, '
    '"extractedFields": ["invoiceNumber", "clientName", "totalAmount"]}'
)


def intent_json(intent: str, confidence: float = 0.9, **entities: Any) -> str:
    payload = {
        "intent": intent,
        "confidence": confidence,
        "entities": {
            "client": entities.get("client"),
            "amount": entities.get("amount"),
            "description": entities.get("description"),
            "date": entities.get("date"),
        },
        "reasoning": "test",
    }
    return json.dumps(payload)


@pytest.fixture
def memory():
    return ConversationMemory(max_entries=20, context_entries=5)


@pytest.fixture
def status():
    return ModelStatus()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def stub_books():
    return StubBooks()


@pytest.fixture
def books():
    return InMemoryBooks()


@pytest.fixture
def make_assistant(memory, status):
    def _make(llm, books):
        return Assistant(books, llm, context=AssistantContext(memory, status))
    return _make
