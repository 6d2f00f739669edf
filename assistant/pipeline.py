"""
assistant/pipeline.py
---------------------
End-to-end handling of a chat message or an uploaded document.

Chat:   pending-confirmation check → regex extraction + intent classification
        → merge (model first, regex fills gaps) → dispatch.
Upload: parse (worker thread) → LLM extraction → suggestions → auto-create
        or park the result as pending until the user confirms in chat.

``build_assistant`` is the composition root: it owns the memory store and
the model availability flag and hands them to every component.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date
from typing import Any, Dict, Optional, Union

from . import config
from .bookkeeping import AccountingBackend, InMemoryBooks
from .dispatcher import Dispatcher, as_record_dict
from .document_extraction import DocumentExtractor, can_auto_create, generate_suggestions
from .documents import parse_document
from .errors import DocumentParseError
from .intent import IntentClassifier
from .memory import ConversationMemory
from .models import (
    AssistantReply,
    DocumentResult,
    ExtractedFinancialData,
    ExtractedInvoiceData,
    Intent,
    IntentEntities,
    InvoiceCreationInput,
    MergedEntities,
)
from .ollama_llm import LLM, ModelStatus, OllamaLLM
from .patterns import extract_financial_data, normalize_date

log = logging.getLogger("assistant.pipeline")

_AFFIRMATIVE_RE = re.compile(
    r"^\s*(?:yes|yep|yeah|y|sure|ok|okay|confirm|go ahead|create it|please do)\b", re.I
)
_NEGATIVE_RE = re.compile(r"^\s*(?:no|nope|n|cancel|discard|don't|do not)\b", re.I)

PROCESSING_ERROR_MESSAGE = "Sorry, I encountered an error processing your message. Please try again."
PENDING_DISCARDED_MESSAGE = "Okay, I've discarded the extracted invoice data."
CHAT_PREVIEW_CHARS = 500
EXTRACT_PREVIEW_CHARS = 1000


class AssistantContext:
    """State shared across requests: conversation memory and model availability."""

    def __init__(self, memory: Optional[ConversationMemory] = None, status: Optional[ModelStatus] = None):
        self.memory = memory or ConversationMemory()
        self.status = status or ModelStatus()


def merge_entities(
    model_entities: Union[IntentEntities, Dict[str, Any], None],
    extracted: Union[ExtractedFinancialData, Dict[str, Any], None],
) -> MergedEntities:
    """Model-supplied fields win; regex findings fill whatever the model left null."""
    if isinstance(model_entities, IntentEntities):
        model_fields = model_entities.model_dump()
    else:
        model_fields = dict(model_entities or {})
    if isinstance(extracted, ExtractedFinancialData):
        regex_fields = extracted.model_dump()
    else:
        regex_fields = dict(extracted or {})

    merged: Dict[str, Any] = {}
    for field in MergedEntities.model_fields:
        value = model_fields.get(field)
        merged[field] = value if value not in (None, "") else regex_fields.get(field)
    return MergedEntities.model_validate(merged)


def _preview(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _pending_to_entities(pending: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "client": pending.get("clientName"),
        "amount": pending.get("totalAmount"),
        "description": pending.get("description") or "Services as per uploaded invoice",
        "date": pending.get("invoiceDate"),
    }


def _pending_prompt(data: ExtractedInvoiceData) -> str:
    client = data.clientName or "an unknown client"
    amount = f"${data.totalAmount:,.2f}" if data.totalAmount else "an unknown amount"
    return (
        f"Document processed successfully. I found an invoice for {client} totalling {amount}. "
        "Reply \"yes\" to create it, or \"no\" to discard it."
    )


class Assistant:
    """Public entry points for chat messages and document uploads."""

    def __init__(
        self,
        books: AccountingBackend,
        llm: LLM,
        context: Optional[AssistantContext] = None,
        extraction_llm: Optional[LLM] = None,
    ):
        self.context = context or AssistantContext()
        self.books = books
        self.classifier = IntentClassifier(llm, self.context.memory, self.context.status)
        self.dispatcher = Dispatcher(books, self.classifier)
        self.extractor = DocumentExtractor(extraction_llm or llm, self.context.status)

    @property
    def memory(self) -> ConversationMemory:
        return self.context.memory

    @property
    def status(self) -> ModelStatus:
        return self.context.status

    # -- chat ----------------------------------------------------------------
    async def process_message(
        self, message: str, user_id: str, conversation_id: str = "default"
    ) -> AssistantReply:
        try:
            pending_reply = await self._handle_pending(message, user_id, conversation_id)
            if pending_reply is not None:
                return pending_reply

            extracted = extract_financial_data(message)
            intent_result = await self.classifier.classify(message, user_id, conversation_id)
            entities = merge_entities(intent_result.entities, extracted)
            log.info(
                "message_classified",
                extra={"kv": {
                    "intent": intent_result.intent.value,
                    "confidence": intent_result.confidence,
                    "source": intent_result.source,
                }},
            )
            reply = await self.dispatcher.dispatch(intent_result, entities, user_id, message, conversation_id)
            if reply.failure is None and intent_result.fallback_reason is not None:
                reply.failure = intent_result.fallback_reason
            return reply
        except Exception:
            log.exception("process_message_failed")
            return AssistantReply(message=PROCESSING_ERROR_MESSAGE)

    async def _handle_pending(
        self, message: str, user_id: str, conversation_id: str
    ) -> Optional[AssistantReply]:
        pending = self.memory.get_pending(user_id, conversation_id)
        if pending is None:
            return None

        if _AFFIRMATIVE_RE.match(message or ""):
            self.memory.clear_pending(user_id, conversation_id)
            log.info("pending_confirmed", extra={"kv": {"user_id": user_id}})
            reply = await self.dispatcher.create_invoice_from_entities(_pending_to_entities(pending), user_id)
            reply.intent = Intent.CREATE_INVOICE
            return reply

        if _NEGATIVE_RE.match(message or ""):
            self.memory.clear_pending(user_id, conversation_id)
            log.info("pending_discarded", extra={"kv": {"user_id": user_id}})
            return AssistantReply(message=PENDING_DISCARDED_MESSAGE)

        return None

    def clear_conversation(self, user_id: str, conversation_id: str = "default") -> None:
        self.memory.clear(user_id, conversation_id)

    # -- documents -----------------------------------------------------------
    async def _parse_and_extract(self, file_path: str, mime_type: Optional[str]):
        text = await asyncio.to_thread(parse_document, file_path, mime_type)
        if not text or len(text.strip()) < config.DOCUMENT_MIN_CHARS:
            raise DocumentParseError("Could not extract readable text from the document")
        data = await self.extractor.extract(text)
        return text, data

    async def process_document(
        self,
        file_path: str,
        mime_type: Optional[str],
        user_id: str,
        conversation_id: str = "default",
        auto_create: bool = False,
    ) -> DocumentResult:
        """Parse and extract an uploaded invoice.

        Raises ``DocumentParseError`` / ``ExtractionError``; everything after a
        successful extraction (including a failed auto-create) is reported in
        the result instead.
        """
        text, data = await self._parse_and_extract(file_path, mime_type)
        result = DocumentResult(
            message="Document processed successfully",
            extractedData=data,
            documentText=_preview(text, CHAT_PREVIEW_CHARS),
            suggestions=generate_suggestions(data),
        )

        if auto_create and can_auto_create(data):
            try:
                payload = InvoiceCreationInput(
                    client=data.clientName,
                    amount=data.totalAmount,
                    description=data.description or "Services as per uploaded invoice",
                    date=normalize_date(data.invoiceDate) or date.today().isoformat(),
                    user_id=str(user_id),
                )
                result.invoice = as_record_dict(await self.books.create_invoice(payload))
                result.message = "Document processed and invoice created successfully"
                result.autoCreated = True
                log.info("document_invoice_auto_created", extra={"kv": {"user_id": user_id}})
                return result
            except Exception as e:
                log.error("document_auto_create_failed", extra={"kv": {"error": str(e)}})
                result.autoCreateError = f"Failed to auto-create invoice: {e}"

        self.memory.set_pending(user_id, conversation_id, data.model_dump())
        result.pending = True
        if not result.autoCreateError:
            result.message = _pending_prompt(data)
        return result

    async def extract_document(self, file_path: str, mime_type: Optional[str]) -> DocumentResult:
        text, data = await self._parse_and_extract(file_path, mime_type)
        return DocumentResult(
            message="Data extracted successfully",
            extractedData=data,
            documentText=_preview(text, EXTRACT_PREVIEW_CHARS),
            suggestions=generate_suggestions(data),
        )


def build_assistant(context: Optional[AssistantContext] = None) -> Assistant:
    """Wire the assistant from environment configuration."""
    context = context or AssistantContext()
    if config.ACCOUNTING_BACKEND == "xero":
        from .xero import XeroBooks

        books: AccountingBackend = XeroBooks()
    else:
        books = InMemoryBooks()
    llm = OllamaLLM(model=config.ASSISTANT_MODEL)
    extraction_llm = llm
    if config.EXTRACTION_MODEL != config.ASSISTANT_MODEL:
        extraction_llm = OllamaLLM(model=config.EXTRACTION_MODEL)
    log.info(
        "assistant_built",
        extra={"kv": {
            "backend": config.ACCOUNTING_BACKEND,
            "model": config.ASSISTANT_MODEL,
            "extraction_model": config.EXTRACTION_MODEL,
        }},
    )
    return Assistant(books, llm, context=context, extraction_llm=extraction_llm)
