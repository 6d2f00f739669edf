"""
assistant/classify.py
---------------------
Very simple keyword fallback classifier (used when the model is unavailable
or its output is unusable).  Entities are left empty for the regex merge
to fill.
"""

import logging
from typing import Optional

from . import config
from .errors import FailureKind
from .models import Intent, IntentResult

log = logging.getLogger("assistant.classify")

# Checked in order; the first set with a hit wins.
INTENT_KEYWORDS = (
    (Intent.CREATE_INVOICE, ("invoice", "bill", "charge")),
    (Intent.RECORD_TRANSACTION, ("transaction", "expense", "spent", "received", "paid", "income")),
    (Intent.GENERATE_BALANCE_SHEET, ("balance", "summary", "report", "overview")),
)


def classify_fallback(message: str, reason: Optional[FailureKind] = None) -> IntentResult:
    """Heuristic fallback."""
    text = (message or "").lower()

    for intent, keywords in INTENT_KEYWORDS:
        if any(kw in text for kw in keywords):
            log.debug("Fallback classify hit", extra={"kv": {"intent": intent.value}})
            return IntentResult(
                intent=intent,
                confidence=config.FALLBACK_CONFIDENCE,
                reasoning="keyword fallback",
                source="fallback",
                fallback_reason=reason,
            )

    log.debug("Fallback classify default general")
    return IntentResult(
        intent=Intent.GENERAL_INQUIRY,
        confidence=config.FALLBACK_CONFIDENCE,
        reasoning="keyword fallback",
        source="fallback",
        fallback_reason=reason,
    )
