"""
assistant/document_extraction.py
--------------------------------
Invoice field extraction from parsed document text.

The model does the heavy lifting; its JSON is recovered with
``parse_model_json``, cleaned (numbers, dates, confidence, currency) and then
any key field it left empty is filled from the regex pattern extractor.
Unlike the chat path there is no silent fallback: if the model cannot be
used the caller gets an ``ExtractionError``.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from . import config
from .errors import ExtractionError, ModelResponseParseError
from .json_recovery import parse_model_json
from .models import ExtractedInvoiceData
from .ollama_llm import LLM, ModelStatus, is_unavailability_error
from .patterns import (
    extract_client_info,
    extract_financial_data,
    extract_invoice_details,
    normalize_date,
)
from .prompts import EXTRACTION_SYSTEM_PROMPT, extraction_user_prompt

log = logging.getLogger("assistant.document_extraction")

_AMOUNT_FIELDS = ("totalAmount", "subtotal", "taxAmount")
_DATE_FIELDS = ("invoiceDate", "dueDate")


def trim_text(s: str, max_chars: int) -> str:
    s = (s or "").strip()
    return s if len(s) <= max_chars else s[:max_chars]


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace("$", "").replace(",", "").strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def clean_extracted_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce raw model output into values ``ExtractedInvoiceData`` accepts."""
    cleaned = dict(data)

    for field in _AMOUNT_FIELDS:
        if cleaned.get(field) is not None:
            cleaned[field] = _to_float(cleaned[field])

    for field in _DATE_FIELDS:
        if cleaned.get(field):
            cleaned[field] = normalize_date(str(cleaned[field]))

    confidence = _to_float(cleaned.get("confidence"))
    cleaned["confidence"] = min(1.0, max(0.0, confidence or 0.0))

    if not cleaned.get("currency"):
        cleaned["currency"] = config.DEFAULT_CURRENCY

    fields = cleaned.get("extractedFields")
    cleaned["extractedFields"] = [str(f) for f in fields] if isinstance(fields, list) else []

    for key in ("invoiceNumber", "clientName", "clientAddress", "description", "vendorName", "paymentTerms"):
        value = cleaned.get(key)
        if value is not None:
            value = str(value).strip()
            cleaned[key] = value or None

    return cleaned


def fill_from_patterns(data: ExtractedInvoiceData, text: str) -> ExtractedInvoiceData:
    """Fill empty client, total, invoice number, dates and terms from the regex extractors."""
    found = extract_financial_data(text)
    filled: List[str] = []

    if not data.clientName:
        name = extract_client_info(text).get("name") or found.client
        if name:
            data.clientName = name
            filled.append("clientName")
    if data.totalAmount is None and found.amount:
        amount = _to_float(found.amount)
        if amount is not None:
            data.totalAmount = amount
            filled.append("totalAmount")
    if not data.invoiceNumber and found.invoice_number:
        data.invoiceNumber = found.invoice_number
        filled.append("invoiceNumber")
    if not data.invoiceDate and found.date:
        data.invoiceDate = found.date
        filled.append("invoiceDate")

    details = extract_invoice_details(text)
    if not data.dueDate and details.get("due_date"):
        data.dueDate = details["due_date"]
        filled.append("dueDate")
    if not data.paymentTerms and details.get("payment_terms"):
        data.paymentTerms = details["payment_terms"]
        filled.append("paymentTerms")

    if filled:
        data.extractedFields = data.extractedFields + [f for f in filled if f not in data.extractedFields]
        log.info("extraction_pattern_fill_applied", extra={"kv": {"fields": ",".join(filled)}})
    return data


def generate_suggestions(data: ExtractedInvoiceData) -> List[str]:
    suggestions: List[str] = []
    if not data.clientName:
        suggestions.append("Consider adding client name manually if not detected")
    if not data.totalAmount:
        suggestions.append("Please verify the invoice amount was correctly extracted")
    if not data.invoiceDate:
        suggestions.append("Consider adding the invoice date manually")
    if data.confidence < 0.7:
        suggestions.append("Low confidence extraction - please review all fields carefully")
    if data.taxAmount and not data.subtotal:
        suggestions.append("Tax amount detected but no subtotal - please verify amounts")
    return suggestions


def can_auto_create(data: ExtractedInvoiceData) -> bool:
    return bool(
        data.clientName
        and data.totalAmount
        and data.totalAmount > 0
        and data.confidence > config.AUTO_CREATE_MIN_CONFIDENCE
    )


class DocumentExtractor:
    """Runs the extraction prompt over document text."""

    def __init__(self, llm: LLM, status: ModelStatus):
        self.llm = llm
        self.status = status

    async def extract(self, text: str) -> ExtractedInvoiceData:
        text = trim_text(text, config.EXTRACTION_MAX_CHARS)
        if len(text) < config.DOCUMENT_MIN_CHARS:
            raise ExtractionError("Document text is too short to extract invoice data from")
        if self.status.is_unavailable:
            raise ExtractionError(f"AI extraction failed: model unavailable ({self.status.reason})")

        start = time.perf_counter()
        try:
            raw = await self.llm.invoke(
                EXTRACTION_SYSTEM_PROMPT,
                extraction_user_prompt(text),
                num_predict=config.EXTRACTION_NUM_PREDICT,
            )
        except Exception as e:
            if is_unavailability_error(e):
                self.status.mark_unavailable(str(e))
            log.error("extraction_model_call_failed", extra={"kv": {"error": str(e)}})
            raise ExtractionError(f"AI extraction failed: {e}") from e

        try:
            parsed = parse_model_json(raw)
            data = ExtractedInvoiceData.model_validate(clean_extracted_data(parsed))
        except (ModelResponseParseError, ValidationError) as e:
            log.error(
                "extraction_model_response_malformed",
                extra={"kv": {"error": str(e), "raw": (raw or "")[:500]}},
            )
            raise ExtractionError(f"AI extraction failed: {e}") from e

        data = fill_from_patterns(data, text)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        log.info(
            "extraction_complete",
            extra={"kv": {
                "confidence": data.confidence,
                "fields_detected": len(data.extractedFields),
                "elapsed_ms": elapsed_ms,
            }},
        )
        return data
