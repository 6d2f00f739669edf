"""
assistant/config.py
-------------------
Environment driven settings for the invoice assistant.

All values are read once at import time (after ``load_dotenv()``) so a
``.env`` file next to the service is honoured.  Numeric values that fail
to parse fall back to their defaults instead of crashing the service.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _get_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return default


# ---------------------------------------------------------------------------
# Ollama / model settings
# ---------------------------------------------------------------------------
OLLAMA_HOST: str = os.getenv("OLLAMA_HOST", "http://localhost:11434").rstrip("/")
ASSISTANT_MODEL: str = os.getenv("ASSISTANT_MODEL", "llama3.1:8b")
EXTRACTION_MODEL: str = os.getenv("EXTRACTION_MODEL", ASSISTANT_MODEL)

# Intent detection and document extraction want near-deterministic output;
# the free-form conversation is allowed to be chattier.
OLLAMA_TEMPERATURE: float = _get_float("OLLAMA_TEMPERATURE", 0.1)
CONVERSATION_TEMPERATURE: float = _get_float("CONVERSATION_TEMPERATURE", 0.7)
OLLAMA_NUM_PREDICT: int = _get_int("OLLAMA_NUM_PREDICT", 200)
EXTRACTION_NUM_PREDICT: int = _get_int("EXTRACTION_NUM_PREDICT", 2000)
OLLAMA_NUM_CTX: int = _get_int("OLLAMA_NUM_CTX", 4096)
OLLAMA_KEEP_ALIVE: str = os.getenv("OLLAMA_KEEP_ALIVE", "30m")

# ---------------------------------------------------------------------------
# Conversation memory and classification
# ---------------------------------------------------------------------------
MEMORY_MAX_ENTRIES: int = _get_int("MEMORY_MAX_ENTRIES", 20)
MEMORY_CONTEXT_ENTRIES: int = _get_int("MEMORY_CONTEXT_ENTRIES", 5)
FALLBACK_CONFIDENCE: float = _get_float("FALLBACK_CONFIDENCE", 0.5)

# ---------------------------------------------------------------------------
# Accounting backend
# ---------------------------------------------------------------------------
ACCOUNTING_BACKEND: str = os.getenv("ACCOUNTING_BACKEND", "memory").lower()
DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "USD")
PAYMENT_TERMS_DAYS: int = _get_int("PAYMENT_TERMS_DAYS", 30)

XERO_BASE_URL: str = os.getenv("XERO_BASE_URL", "https://api.xero.com").rstrip("/")
XERO_ACCESS_TOKEN: str = os.getenv("XERO_ACCESS_TOKEN", "")
XERO_TENANT_ID: str = os.getenv("XERO_TENANT_ID", "")
XERO_CURRENCY_CODE: str = os.getenv("XERO_CURRENCY_CODE", "USD")
XERO_TIMEOUT_SEC: float = _get_float("XERO_TIMEOUT_SEC", 10.0)

# ---------------------------------------------------------------------------
# Document uploads
# ---------------------------------------------------------------------------
UPLOAD_MAX_BYTES: int = _get_int("UPLOAD_MAX_BYTES", 10 * 1024 * 1024)
DOCUMENT_MIN_CHARS: int = _get_int("DOCUMENT_MIN_CHARS", 10)
EXTRACTION_MAX_CHARS: int = _get_int("EXTRACTION_MAX_CHARS", 12000)
AUTO_CREATE_MIN_CONFIDENCE: float = _get_float("AUTO_CREATE_MIN_CONFIDENCE", 0.6)
