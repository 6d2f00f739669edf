"""
assistant/dispatcher.py
-----------------------
Turns a classified intent plus merged entities into one accounting
operation (or a conversational reply) and a user-facing message.

``Dispatcher.dispatch`` never raises.  Missing entities get a clarifying
question, schema and backend failures get an apology, and the underlying
error only goes to the log.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import date
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

from .bookkeeping import AccountingBackend
from .errors import BookkeepingValidationError, FailureKind
from .intent import IntentClassifier
from .models import (
    AssistantReply,
    Intent,
    IntentResult,
    InvoiceCreationInput,
    MergedEntities,
    TransactionInput,
)
from .patterns import normalize_date

log = logging.getLogger("assistant.dispatcher")

INVOICE_CLARIFY_MESSAGE = (
    "I need more information to create an invoice. Please provide the client name "
    "and amount. For example: \"Create an invoice for John Smith for $500\""
)
INVOICE_FAILED_MESSAGE = "Sorry, I couldn't create the invoice. Please try again."
TRANSACTION_CLARIFY_MESSAGE = (
    "I need more information to record a transaction. Please provide the amount "
    "and description. For example: \"I spent $50 on office supplies\""
)
TRANSACTION_FAILED_MESSAGE = "Sorry, I couldn't record the transaction. Please try again."
BALANCE_SHEET_FAILED_MESSAGE = "Sorry, I couldn't generate the balance sheet. Please try again."


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace("$", "").replace(",", "").strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def as_record_dict(record: Any) -> Dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    return dict(record)


def _pick(record: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return default


def _money(value: Any) -> str:
    number = _to_number(value) or 0.0
    return f"${number:,.2f}"


def _plain_amount(value: Any) -> str:
    number = _to_number(value)
    if number is None:
        return str(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:.2f}"


def _entry_date(value: Optional[str]) -> str:
    return normalize_date(value) or date.today().isoformat()


def _entities_dict(entities: Union[MergedEntities, Dict[str, Any]]) -> Dict[str, Any]:
    return entities.model_dump() if isinstance(entities, BaseModel) else dict(entities or {})


def format_balance_sheet(sheet: Dict[str, Any]) -> str:
    return (
        "Here's your current balance sheet:\n\n"
        f"Total Revenue: {_money(sheet.get('totalRevenue'))}\n"
        f"Total Expenses: {_money(sheet.get('totalExpenses'))}\n"
        f"Net Income: {_money(sheet.get('netIncome'))}\n"
        f"Outstanding Invoices: {sheet.get('outstandingInvoices', 0)}"
    )


class Dispatcher:
    """Routes an ``IntentResult`` to the accounting backend or the conversation model."""

    def __init__(self, books: AccountingBackend, classifier: IntentClassifier):
        self.books = books
        self.classifier = classifier

    async def dispatch(
        self,
        intent_result: IntentResult,
        entities: Union[MergedEntities, Dict[str, Any]],
        user_id: str,
        message: str = "",
        conversation_id: str = "default",
    ) -> AssistantReply:
        fields = _entities_dict(entities)
        intent = intent_result.intent

        if intent == Intent.CREATE_INVOICE:
            reply = await self.create_invoice_from_entities(fields, user_id)
        elif intent == Intent.RECORD_TRANSACTION:
            reply = await self.record_transaction(fields, user_id)
        elif intent == Intent.GENERATE_BALANCE_SHEET:
            reply = await self.generate_balance_sheet(user_id)
        else:
            text = await self.classifier.respond(message, user_id, conversation_id)
            reply = AssistantReply(message=text)

        reply.intent = intent
        reply.confidence = intent_result.confidence
        return reply

    async def create_invoice_from_entities(self, fields: Dict[str, Any], user_id: str) -> AssistantReply:
        client = fields.get("client")
        amount = _to_number(fields.get("amount"))
        if not client or not amount or amount <= 0:
            log.info("invoice_entities_missing", extra={"kv": {"client": bool(client), "amount": fields.get("amount")}})
            return AssistantReply(message=INVOICE_CLARIFY_MESSAGE, failure=FailureKind.INSUFFICIENT_ENTITIES)

        try:
            payload = InvoiceCreationInput(
                client=str(client).strip(),
                amount=amount,
                description=fields.get("description") or f"Services for {client}",
                date=_entry_date(fields.get("date")),
                user_id=str(user_id),
            )
        except ValueError as e:
            log.error("invoice_input_invalid", extra={"kv": {"error": str(e)}})
            return AssistantReply(message=INVOICE_FAILED_MESSAGE, failure=FailureKind.VALIDATION_ERROR)

        start = time.perf_counter()
        try:
            record = as_record_dict(await self.books.create_invoice(payload))
        except BookkeepingValidationError as e:
            log.error("invoice_create_failed", extra={"kv": {"error": str(e), "kind": "validation"}})
            return AssistantReply(message=INVOICE_FAILED_MESSAGE, failure=FailureKind.VALIDATION_ERROR)
        except Exception as e:
            log.error("invoice_create_failed", extra={"kv": {"error": str(e), "kind": "external"}})
            return AssistantReply(message=INVOICE_FAILED_MESSAGE, failure=FailureKind.EXTERNAL_OPERATION_FAILURE)

        invoice_id = _pick(record, "id", "invoice_number", "InvoiceID")
        customer = _pick(record, "customer_name", "client", default=payload.client)
        total = _pick(record, "amount", default=fields.get("amount"))
        log.info(
            "invoice_create_ok",
            extra={"kv": {"invoice_id": invoice_id, "elapsed_ms": int((time.perf_counter() - start) * 1000)}},
        )
        return AssistantReply(
            message=f"Invoice created successfully! Invoice #{invoice_id} for {customer} - ${_plain_amount(total)}",
            data=record,
        )

    async def record_transaction(self, fields: Dict[str, Any], user_id: str) -> AssistantReply:
        amount = _to_number(fields.get("amount"))
        description = fields.get("description")
        if amount is None or not fields.get("amount") or not description:
            log.info(
                "transaction_entities_missing",
                extra={"kv": {"amount": fields.get("amount"), "description": bool(description)}},
            )
            return AssistantReply(message=TRANSACTION_CLARIFY_MESSAGE, failure=FailureKind.INSUFFICIENT_ENTITIES)

        # Positive amounts are income, everything else an expense.
        txn_type = "income" if amount > 0 else "expense"
        try:
            payload = TransactionInput(
                amount=amount,
                description=str(description),
                date=_entry_date(fields.get("date")),
                type=txn_type,
                user_id=str(user_id),
            )
        except ValueError as e:
            log.error("transaction_input_invalid", extra={"kv": {"error": str(e)}})
            return AssistantReply(message=TRANSACTION_FAILED_MESSAGE, failure=FailureKind.VALIDATION_ERROR)

        try:
            record = as_record_dict(await self.books.record_transaction(payload))
        except BookkeepingValidationError as e:
            log.error("transaction_record_failed", extra={"kv": {"error": str(e), "kind": "validation"}})
            return AssistantReply(message=TRANSACTION_FAILED_MESSAGE, failure=FailureKind.VALIDATION_ERROR)
        except Exception as e:
            log.error("transaction_record_failed", extra={"kv": {"error": str(e), "kind": "external"}})
            return AssistantReply(message=TRANSACTION_FAILED_MESSAGE, failure=FailureKind.EXTERNAL_OPERATION_FAILURE)

        txn_id = _pick(record, "transaction_id", "id")
        log.info("transaction_record_ok", extra={"kv": {"transaction_id": txn_id, "type": txn_type}})
        return AssistantReply(
            message=(
                f"Transaction recorded successfully! {txn_type.capitalize()} of "
                f"${_plain_amount(abs(amount))} for {description}"
            ),
            data=record,
        )

    async def generate_balance_sheet(self, user_id: str) -> AssistantReply:
        try:
            sheet = as_record_dict(await self.books.generate_balance_sheet(str(user_id)))
        except Exception as e:
            log.error("balance_sheet_failed", extra={"kv": {"error": str(e)}})
            return AssistantReply(message=BALANCE_SHEET_FAILED_MESSAGE, failure=FailureKind.EXTERNAL_OPERATION_FAILURE)
        log.info("balance_sheet_ok", extra={"kv": {"user_id": user_id}})
        return AssistantReply(message=format_balance_sheet(sheet), data=sheet)

