"""
assistant/memory.py
-------------------
In-process conversation memory keyed by (user_id, conversation_id).

Each key holds a bounded history of intent detections and conversation
turns, plus a single slot for document data awaiting user confirmation.
Nothing is persisted; the store lives as long as the process.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple, Union

from . import config
from .models import (
    ConversationEntry,
    IntentDetectionEntry,
    PendingExtractedDataEntry,
)

log = logging.getLogger("assistant.memory")

HistoryEntry = Union[IntentDetectionEntry, ConversationEntry]
_Key = Tuple[str, str]


class ConversationMemory:
    """Bounded per-conversation history with a singleton pending-data slot.

    ``append`` is the only mutator of a history list and is not locked:
    concurrent requests on the same key may briefly leave one entry above
    the cap until the next append trims it.
    """

    def __init__(
        self,
        max_entries: int = config.MEMORY_MAX_ENTRIES,
        context_entries: int = config.MEMORY_CONTEXT_ENTRIES,
    ):
        self.max_entries = max_entries
        self.context_entries = context_entries
        self._history: Dict[_Key, List[HistoryEntry]] = {}
        self._pending: Dict[_Key, PendingExtractedDataEntry] = {}

    @staticmethod
    def _key(user_id: str, conversation_id: str) -> _Key:
        return (str(user_id), str(conversation_id or "default"))

    # -- history -------------------------------------------------------------
    def append(self, user_id: str, conversation_id: str, entry: HistoryEntry) -> None:
        entries = self._history.setdefault(self._key(user_id, conversation_id), [])
        entries.append(entry)
        overflow = len(entries) - self.max_entries
        if overflow > 0:
            del entries[:overflow]

    def history(self, user_id: str, conversation_id: str) -> List[HistoryEntry]:
        return list(self._history.get(self._key(user_id, conversation_id), []))

    def recent_context(self, user_id: str, conversation_id: str) -> str:
        """Render the last few entries as prompt-ready text, most recent last."""
        entries = self._history.get(self._key(user_id, conversation_id), [])
        recent = entries[-self.context_entries:] if self.context_entries > 0 else []
        lines = []
        for entry in recent:
            if isinstance(entry, ConversationEntry):
                lines.append(f"User: {entry.user_message}\nBot: {entry.bot_response}")
            elif isinstance(entry, IntentDetectionEntry):
                lines.append(f'User intent: {entry.intent.value} for message "{entry.message}"')
        return "\n\n".join(lines)

    # -- pending extracted data ---------------------------------------------
    def set_pending(self, user_id: str, conversation_id: str, data: dict) -> None:
        self._pending[self._key(user_id, conversation_id)] = PendingExtractedDataEntry(data=dict(data))
        log.debug("pending_data_set", extra={"kv": {"user_id": user_id, "conversation_id": conversation_id}})

    def get_pending(self, user_id: str, conversation_id: str) -> Optional[dict]:
        entry = self._pending.get(self._key(user_id, conversation_id))
        return dict(entry.data) if entry else None

    def clear_pending(self, user_id: str, conversation_id: str) -> None:
        self._pending.pop(self._key(user_id, conversation_id), None)

    # -- whole conversation --------------------------------------------------
    def clear(self, user_id: str, conversation_id: str) -> None:
        key = self._key(user_id, conversation_id)
        self._history.pop(key, None)
        self._pending.pop(key, None)
        log.info("conversation_cleared", extra={"kv": {"user_id": user_id, "conversation_id": conversation_id}})
