"""
assistant/intent.py
-------------------
LLM intent classification and free-form conversation, each with a
deterministic fallback.

Neither ``IntentClassifier.classify`` nor ``IntentClassifier.respond``
raises: every failure is logged, tagged with a ``FailureKind`` and answered
from the fallback path.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict

from pydantic import ValidationError

from . import config
from .classify import classify_fallback
from .errors import FailureKind, ModelResponseParseError
from .json_recovery import parse_model_json
from .memory import ConversationMemory
from .models import ConversationEntry, IntentDetectionEntry, IntentResult
from .ollama_llm import LLM, ModelStatus, is_unavailability_error
from .prompts import (
    CONVERSATION_SYSTEM_PROMPT,
    FALLBACK_CONVERSATION_REPLY,
    INTENT_SYSTEM_PROMPT,
    conversation_user_prompt,
    intent_user_prompt,
)

log = logging.getLogger("assistant.intent")

_REQUIRED_KEYS = ("intent", "confidence", "entities")
_RAW_PREVIEW_CHARS = 500


def _validate_intent_payload(parsed: Dict[str, Any]) -> IntentResult:
    missing = [k for k in _REQUIRED_KEYS if parsed.get(k) is None]
    if missing:
        raise ModelResponseParseError(f"model response missing keys: {missing}")
    entities = parsed.get("entities")
    if not isinstance(entities, dict):
        raise ModelResponseParseError("model response 'entities' is not an object")
    intent = str(parsed.get("intent")).strip().upper()
    try:
        return IntentResult(
            intent=intent,
            confidence=parsed.get("confidence"),
            entities=entities,
            reasoning=parsed.get("reasoning"),
            source="model",
        )
    except (ValidationError, ValueError, TypeError) as e:
        raise ModelResponseParseError(f"model response failed validation: {e}") from e


class IntentClassifier:
    """Classifies messages and produces conversational replies."""

    def __init__(self, llm: LLM, memory: ConversationMemory, status: ModelStatus):
        self.llm = llm
        self.memory = memory
        self.status = status

    def _note_failure(self, exc: BaseException) -> FailureKind:
        # Only endpoint-level errors flip the shared flag; anything else
        # degrades this one call.
        if is_unavailability_error(exc):
            self.status.mark_unavailable(str(exc))
        return FailureKind.MODEL_UNAVAILABLE

    async def classify(self, message: str, user_id: str, conversation_id: str) -> IntentResult:
        if self.status.is_unavailable:
            log.info("intent_fallback_used", extra={"kv": {"reason": "model_unavailable"}})
            return classify_fallback(message, FailureKind.MODEL_UNAVAILABLE)

        context = self.memory.recent_context(user_id, conversation_id)
        start = time.perf_counter()
        try:
            raw = await self.llm.invoke(INTENT_SYSTEM_PROMPT, intent_user_prompt(message, context))
        except Exception as e:
            reason = self._note_failure(e)
            log.error("intent_model_call_failed", extra={"kv": {"error": str(e), "reason": reason.value}})
            return classify_fallback(message, reason)

        try:
            result = _validate_intent_payload(parse_model_json(raw))
        except ModelResponseParseError as e:
            log.error(
                "intent_model_response_malformed",
                extra={"kv": {"error": str(e), "raw": raw[:_RAW_PREVIEW_CHARS]}},
            )
            return classify_fallback(message, FailureKind.MALFORMED_MODEL_RESPONSE)

        self.memory.append(
            user_id,
            conversation_id,
            IntentDetectionEntry(message=message, intent=result.intent),
        )
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        log.info(
            "intent_model_ok",
            extra={"kv": {
                "intent": result.intent.value,
                "confidence": result.confidence,
                "elapsed_ms": elapsed_ms,
            }},
        )
        return result

    async def respond(self, message: str, user_id: str, conversation_id: str) -> str:
        if self.status.is_unavailable:
            log.info("conversation_fallback_used", extra={"kv": {"reason": "model_unavailable"}})
            return FALLBACK_CONVERSATION_REPLY

        context = self.memory.recent_context(user_id, conversation_id)
        try:
            reply = await self.llm.invoke(
                CONVERSATION_SYSTEM_PROMPT,
                conversation_user_prompt(message, context),
                temperature=config.CONVERSATION_TEMPERATURE,
            )
        except Exception as e:
            reason = self._note_failure(e)
            log.error("conversation_model_call_failed", extra={"kv": {"error": str(e), "reason": reason.value}})
            return FALLBACK_CONVERSATION_REPLY

        if not reply:
            log.warning("conversation_model_empty_reply")
            return FALLBACK_CONVERSATION_REPLY

        self.memory.append(
            user_id,
            conversation_id,
            ConversationEntry(user_message=message, bot_response=reply),
        )
        return reply
