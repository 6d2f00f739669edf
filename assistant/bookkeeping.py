"""
assistant/bookkeeping.py
------------------------
Accounting backends the dispatcher talks to.

``InMemoryBooks`` is the default stand-in: invoices and transactions live in
process memory, numbered ``INV-0001`` / ``TXN-000001``.  ``XeroBooks`` (see
``assistant.xero``) extends it to push invoices to Xero.

Business rules:
  • invoices are due ``PAYMENT_TERMS_DAYS`` after their issue date and start ``pending``
  • transactions are categorised from their description keywords
  • revenue = invoiced amounts + income; expenses are summed as absolute values
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Protocol, Union

from pydantic import BaseModel, ValidationError

from . import config
from .errors import BookkeepingValidationError
from .models import (
    BalanceSheet,
    InvoiceCreationInput,
    InvoiceRecord,
    TransactionInput,
    TransactionRecord,
)

log = logging.getLogger("assistant.bookkeeping")

TRANSACTION_CATEGORIES = {
    "office": ["office", "supplies", "equipment"],
    "travel": ["travel", "flight", "hotel", "gas"],
    "marketing": ["marketing", "advertising", "promotion"],
    "software": ["software", "subscription", "saas"],
    "professional": ["consulting", "legal", "accounting"],
}


class AccountingBackend(Protocol):
    async def create_invoice(self, data: Union[InvoiceCreationInput, Dict[str, Any]]) -> Any: ...

    async def record_transaction(self, data: Union[TransactionInput, Dict[str, Any]]) -> Any: ...

    async def generate_balance_sheet(self, user_id: str) -> Any: ...

    async def list_invoices(
        self, user_id: str, status: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Any]: ...

    async def list_transactions(
        self, user_id: str, type: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Any]: ...


def calculate_due_date(issue_date: str, payment_terms: int = config.PAYMENT_TERMS_DAYS) -> str:
    return (date.fromisoformat(issue_date) + timedelta(days=payment_terms)).isoformat()


def categorize_transaction(description: str) -> str:
    lower = (description or "").lower()
    for category, keywords in TRANSACTION_CATEGORIES.items():
        if any(kw in lower for kw in keywords):
            return category
    return "general"


def _validate(model: type, data: Union[BaseModel, Dict[str, Any]]) -> Any:
    if isinstance(data, model):
        return data
    try:
        payload = data.model_dump() if isinstance(data, BaseModel) else data
        return model.model_validate(payload)
    except ValidationError as e:
        log.error("bookkeeping_validation_failed", extra={"kv": {"model": model.__name__, "errors": e.error_count()}})
        raise BookkeepingValidationError(f"Invalid {model.__name__}: {e}") from e


class InMemoryBooks:
    """Process-local ledger of invoices and transactions."""

    def __init__(self, currency: str = config.DEFAULT_CURRENCY):
        self.currency = currency
        self.invoices: List[InvoiceRecord] = []
        self.transactions: List[TransactionRecord] = []
        self._invoice_counter = 1
        self._transaction_counter = 1

    def _next_invoice_id(self) -> int:
        invoice_id = self._invoice_counter
        self._invoice_counter += 1
        return invoice_id

    def _build_invoice(self, data: InvoiceCreationInput, external_id: Optional[str] = None) -> InvoiceRecord:
        invoice_id = self._next_invoice_id()
        return InvoiceRecord(
            id=invoice_id,
            invoice_number=f"INV-{invoice_id:04d}",
            customer_name=data.client,
            amount=data.amount,
            description=data.description,
            issue_date=data.date,
            due_date=calculate_due_date(data.date),
            currency=self.currency,
            user_id=data.user_id,
            external_id=external_id,
        )

    async def create_invoice(self, data: Union[InvoiceCreationInput, Dict[str, Any]]) -> InvoiceRecord:
        validated = _validate(InvoiceCreationInput, data)
        invoice = self._build_invoice(validated)
        self.invoices.append(invoice)
        log.info("invoice_created", extra={"kv": {"invoice_number": invoice.invoice_number, "user_id": invoice.user_id}})
        return invoice

    async def record_transaction(self, data: Union[TransactionInput, Dict[str, Any]]) -> TransactionRecord:
        validated = _validate(TransactionInput, data)
        txn_id = self._transaction_counter
        self._transaction_counter += 1
        transaction = TransactionRecord(
            id=txn_id,
            transaction_id=f"TXN-{txn_id:06d}",
            amount=validated.amount,
            description=validated.description,
            date=validated.date,
            type=validated.type,
            category=categorize_transaction(validated.description),
            currency=self.currency,
            user_id=validated.user_id,
        )
        self.transactions.append(transaction)
        log.info(
            "transaction_recorded",
            extra={"kv": {"transaction_id": transaction.transaction_id, "type": transaction.type}},
        )
        return transaction

    async def generate_balance_sheet(self, user_id: str) -> BalanceSheet:
        invoices = [inv for inv in self.invoices if inv.user_id == user_id]
        transactions = [txn for txn in self.transactions if txn.user_id == user_id]

        invoiced = sum(inv.amount for inv in invoices)
        income = sum(txn.amount for txn in transactions if txn.type == "income")
        expenses = sum(abs(txn.amount) for txn in transactions if txn.type == "expense")
        pending = [inv for inv in invoices if inv.status == "pending"]

        sheet = BalanceSheet(
            totalRevenue=invoiced + income,
            totalExpenses=expenses,
            netIncome=invoiced + income - expenses,
            outstandingInvoices=len(pending),
            outstandingAmount=sum(inv.amount for inv in pending),
            totalInvoices=len(invoices),
            totalTransactions=len(transactions),
        )
        log.info("balance_sheet_generated", extra={"kv": {"user_id": user_id}})
        return sheet

    async def list_invoices(
        self, user_id: str, status: Optional[str] = None, limit: Optional[int] = None
    ) -> List[InvoiceRecord]:
        invoices = [inv for inv in self.invoices if inv.user_id == user_id]
        if status:
            invoices = [inv for inv in invoices if inv.status == status]
        return invoices[:limit] if limit else invoices

    async def list_transactions(
        self, user_id: str, type: Optional[str] = None, limit: Optional[int] = None
    ) -> List[TransactionRecord]:
        transactions = [txn for txn in self.transactions if txn.user_id == user_id]
        if type:
            transactions = [txn for txn in transactions if txn.type == type]
        return transactions[:limit] if limit else transactions
