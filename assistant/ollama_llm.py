"""
Ollama transport and model availability tracking
================================================

The rest of the assistant only needs one thing from the language model:
"given a system prompt and a user prompt, return text".  ``OllamaLLM``
provides exactly that over ``ollama.AsyncClient``.

Availability
------------

``ModelStatus`` is the single cross-request signal about the model.  It
starts unknown, is set by the one-time startup probe
(``check_model_connection``) and is flipped to unavailable the first time a
call fails with an error that ``is_unavailability_error`` recognises (the
host is down, the model is missing, credentials are wrong).  Once
unavailable it stays that way until the process restarts; every classifier
and conversation call then goes straight to the deterministic fallback.
Other errors (timeouts mid-generation, garbage output) only affect the call
that hit them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

import httpx
import ollama

from . import config

log = logging.getLogger("assistant.ollama_llm")

_UNAVAILABLE_STATUS_CODES = {401, 403, 404}
_UNAVAILABLE_MARKERS = (
    "404",
    "not found",
    "connection refused",
    "failed to connect",
    "unauthorized",
    "api key",
    "name or service not known",
)


class LLM(Protocol):
    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
        num_predict: Optional[int] = None,
    ) -> str: ...


class ModelStatus:
    """Process-wide "is the model reachable" flag; monotonic once unavailable."""

    def __init__(self) -> None:
        self.available: Optional[bool] = None
        self.reason: Optional[str] = None
        self.changed_at: Optional[datetime] = None

    @property
    def is_unavailable(self) -> bool:
        return self.available is False

    def mark_available(self) -> None:
        if self.available is False:
            return
        self.available = True
        self.changed_at = datetime.now()

    def mark_unavailable(self, reason: str) -> None:
        if self.available is False:
            return
        self.available = False
        self.reason = reason
        self.changed_at = datetime.now()
        log.warning("model_marked_unavailable", extra={"kv": {"reason": reason}})

    def as_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "reason": self.reason,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }


def is_unavailability_error(exc: BaseException) -> bool:
    """True when ``exc`` means the model endpoint is unreachable or misconfigured."""
    if isinstance(exc, (ConnectionError, httpx.ConnectError, httpx.ConnectTimeout)):
        return True
    if isinstance(exc, ollama.ResponseError) and exc.status_code in _UNAVAILABLE_STATUS_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _UNAVAILABLE_MARKERS)


class OllamaLLM:
    """Chat-completion wrapper around ``ollama.AsyncClient``."""

    def __init__(
        self,
        model: str = config.ASSISTANT_MODEL,
        host: str = config.OLLAMA_HOST,
        client: Optional[ollama.AsyncClient] = None,
    ):
        self.model = model
        self.host = host
        self.client = client or ollama.AsyncClient(host=host)

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
        num_predict: Optional[int] = None,
    ) -> str:
        options: Dict[str, Any] = {
            "temperature": config.OLLAMA_TEMPERATURE if temperature is None else temperature,
            "num_predict": num_predict or config.OLLAMA_NUM_PREDICT,
            "num_ctx": config.OLLAMA_NUM_CTX,
        }
        resp = await self.client.chat(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            options=options,
            keep_alive=config.OLLAMA_KEEP_ALIVE,
        )
        return (resp["message"]["content"] or "").strip()


async def check_model_connection(llm: LLM, status: ModelStatus) -> bool:
    """One-time startup probe.  Failure marks the model unavailable for good."""
    log.info("model_connection_check_begin")
    try:
        reply = await llm.invoke(
            "You are a connectivity check. Reply with a short acknowledgement.",
            "Say 'Connection successful' if you can read this.",
            num_predict=10,
        )
    except Exception as e:
        status.mark_unavailable(f"startup check failed: {e}")
        log.error("model_connection_check_failed", extra={"kv": {"error": str(e)}})
        return False
    status.mark_available()
    log.info("model_connection_check_ok", extra={"kv": {"reply_chars": len(reply)}})
    return True
