"""
assistant/patterns.py
---------------------
Regex/heuristic extraction of financial fields from free text.

This is the zero-cost safety net that runs on every chat message (and on
document text after LLM extraction).  It has no external calls and no
state; ``extract_financial_data`` never raises.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Dict, Optional

from .models import ExtractedFinancialData

log = logging.getLogger("assistant.patterns")

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------
_NUM_PATTERN = r"(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{2})?"

_DOLLAR_AMOUNT_RE = re.compile(rf"(?P<sign>-)?\$\s?(?P<inner_sign>-)?(?P<num>{_NUM_PATTERN})(?!\d)")
_BARE_AMOUNT_RE = re.compile(rf"(?<![\w.,/$-])(?P<sign>-)?(?P<num>{_NUM_PATTERN})(?![\d/]|-\d|,\d)")
_DATE_RE = re.compile(r"\b(?:\d{4}-\d{2}-\d{2}|\d{1,2}[/-]\d{1,2}[/-](?:\d{4}|\d{2}))\b")
_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_CLIENT_RE = re.compile(r"\b(?:for|to|from)\s+([A-Za-z][A-Za-z \t]{1,29})", re.I)
_INVOICE_NUMBER_RE = re.compile(r"\b(?:invoice|inv)[#\s]*(\d+)", re.I)

# Words that end a client name ("for Jane for $500" -> "Jane").
_CONNECTIVES = {"for", "to", "from", "on", "at", "with", "by", "and", "of", "in"}
# A "client" starting with one of these is a phrase, not a name.
_NON_NAMES = {"a", "an", "the", "my", "our", "your", "this", "that", "me", "us", "it", "some"}

_FILLER_PATTERNS = [
    re.compile(r"create\s+(?:an?\s+)?invoice"),
    re.compile(r"send\s+(?:an?\s+)?invoice"),
    re.compile(r"record\s+(?:an?\s+)?transaction"),
    re.compile(r"\bfor\s+-?\$?-?\d[\d,]*(?:\.\d+)?"),
    re.compile(r"\bto\s+[a-z\s]+"),
    re.compile(r"\bfrom\s+[a-z\s]+"),
]

_SERVICE_PATTERNS = [
    re.compile(r"\b(consulting|development|design|marketing|legal|accounting|maintenance|support|training|writing)\b"),
    re.compile(r"\b(website|app|logo|branding|seo|content|photography|video)\b"),
]

DEFAULT_DESCRIPTION = "Professional services"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def normalize_date(value: Optional[str]) -> Optional[str]:
    """Return the first date found in ``value`` as ``YYYY-MM-DD`` or None.

    ``D/M/Y`` is read day-first; when that is not a real date (``12/25/2024``)
    the month-first reading is tried.  Two-digit years are taken as 20xx.
    """
    if not value:
        return None
    m = _DATE_RE.search(str(value))
    if not m:
        return None
    token = m.group(0)
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", token):
        y, mo, d = (int(p) for p in token.split("-"))
        try:
            return date(y, mo, d).isoformat()
        except ValueError:
            return None
    first, second, year = (int(p) for p in re.split(r"[/-]", token))
    if year < 100:
        year += 2000
    for day, month in ((first, second), (second, first)):
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            continue
    return None


def _clean_client(raw: str) -> Optional[str]:
    words = []
    for word in raw.split():
        if word.lower() in _CONNECTIVES:
            break
        words.append(word)
    if not words or words[0].lower() in _NON_NAMES:
        return None
    name = " ".join(words).strip()
    return name if 2 <= len(name) <= 30 else None


def _find_amount(text: str) -> Optional[str]:
    m = _DOLLAR_AMOUNT_RE.search(text)
    if not m:
        # Bare numbers: keep dates, emails and invoice numbers out of the way.
        masked = _DATE_RE.sub(" ", text)
        masked = _EMAIL_RE.sub(" ", masked)
        masked = _INVOICE_NUMBER_RE.sub(" ", masked)
        m = _BARE_AMOUNT_RE.search(masked)
    if not m:
        return None
    negative = m.group("sign") or m.groupdict().get("inner_sign")
    return ("-" if negative else "") + m.group("num").replace(",", "")


def _amount_token_re(amount: str) -> re.Pattern:
    # "1200.50" must also match the "$1,200.50" it was read from.
    digits = ",?".join(re.escape(ch) for ch in amount.lstrip("-"))
    return re.compile(rf"(?<![\w.,])-?\$?\s?-?{digits}(?![\d,])")


def _find_client(text: str) -> Optional[str]:
    for m in _CLIENT_RE.finditer(text):
        name = _clean_client(m.group(1))
        if name:
            return name
    return None


def extract_description(message: str, data: ExtractedFinancialData) -> str:
    """Guess what the money is for from whatever is left of the message."""
    clean = message.lower()
    for pattern in _FILLER_PATTERNS:
        clean = pattern.sub(" ", clean)
    if data.client:
        clean = re.sub(re.escape(data.client.lower()), " ", clean)
    if data.amount:
        clean = _amount_token_re(data.amount).sub(" ", clean)
    clean = re.sub(r"\s+", " ", clean).strip()

    for pattern in _SERVICE_PATTERNS:
        m = pattern.search(clean)
        if m:
            return m.group(1)

    if 3 < len(clean) < 100:
        return clean
    return DEFAULT_DESCRIPTION


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def extract_financial_data(text: str) -> ExtractedFinancialData:
    """Scan ``text`` for amount, date, client, email, invoice number and description."""
    try:
        text = text or ""
        data = ExtractedFinancialData()

        data.amount = _find_amount(text)

        m = _DATE_RE.search(text)
        if m:
            data.date = normalize_date(m.group(0))

        data.client = _find_client(text)

        m = _EMAIL_RE.search(text)
        if m:
            data.email = m.group(0)

        m = _INVOICE_NUMBER_RE.search(text)
        if m:
            data.invoice_number = m.group(1)

        data.description = extract_description(text, data)

        log.debug("patterns_extracted", extra={"kv": data.model_dump(exclude_none=True)})
        return data
    except Exception:
        log.exception("patterns_extract_failed")
        return ExtractedFinancialData()


def extract_client_info(text: str) -> Dict[str, str]:
    """Look for a capitalised two-word client name (``client Jane Doe``, ``Jane Doe owes``)."""
    patterns = [
        r"(?:client|customer|for|to)\s+([A-Z][a-z]+\s+[A-Z][a-z]+)",
        r"([A-Z][a-z]+\s+[A-Z][a-z]+)(?:\s+owes|\s+paid|\s+invoice)",
    ]
    for pattern in patterns:
        m = re.search(pattern, text or "")
        if m:
            return {"name": m.group(1)}
    return {}


def extract_invoice_details(text: str) -> Dict[str, str]:
    """Pull a due date and ``Net N days`` payment terms from ``text``."""
    details: Dict[str, str] = {}
    text = text or ""

    m = re.search(r"\bdue\s+(?:on\s+)?(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})", text, re.I)
    if m:
        due = normalize_date(m.group(1))
        if due:
            details["due_date"] = due

    m = re.search(r"\b(?:net\s+)?(\d+)\s+days?\b", text, re.I)
    if m:
        details["payment_terms"] = f"Net {m.group(1)} days"

    return details
