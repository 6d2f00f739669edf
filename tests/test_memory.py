"""
Tests for the conversation memory store.
"""

from assistant.memory import ConversationMemory
from assistant.models import ConversationEntry, Intent, IntentDetectionEntry


def _turn(i: int) -> ConversationEntry:
    return ConversationEntry(user_message=f"message {i}", bot_response=f"reply {i}")


class TestHistory:
    """Bounded history"""

    def test_cap_evicts_oldest_in_order(self, memory):
        for i in range(25):
            memory.append("u1", "c1", _turn(i))

        history = memory.history("u1", "c1")
        assert len(history) == 20
        assert [e.user_message for e in history] == [f"message {i}" for i in range(5, 25)]

    def test_keys_are_isolated(self, memory):
        memory.append("u1", "c1", _turn(1))
        memory.append("u2", "c1", _turn(2))
        memory.append("u1", "c2", _turn(3))

        assert [e.user_message for e in memory.history("u1", "c1")] == ["message 1"]
        assert [e.user_message for e in memory.history("u2", "c1")] == ["message 2"]
        assert [e.user_message for e in memory.history("u1", "c2")] == ["message 3"]

    def test_missing_conversation_id_uses_default(self, memory):
        memory.append("u1", None, _turn(1))
        assert len(memory.history("u1", "default")) == 1

    def test_clear(self, memory):
        memory.append("u1", "c1", _turn(1))
        memory.set_pending("u1", "c1", {"clientName": "Jane"})
        memory.clear("u1", "c1")

        assert memory.history("u1", "c1") == []
        assert memory.get_pending("u1", "c1") is None


class TestRecentContext:
    """Prompt context rendering"""

    def test_renders_last_five(self, memory):
        for i in range(7):
            memory.append("u1", "c1", _turn(i))

        context = memory.recent_context("u1", "c1")
        blocks = context.split("\n\n")
        assert len(blocks) == 5
        assert blocks[0] == "User: message 2\nBot: reply 2"
        assert blocks[-1] == "User: message 6\nBot: reply 6"

    def test_renders_intent_detection(self, memory):
        memory.append("u1", "c1", IntentDetectionEntry(message="bill Jane $5", intent=Intent.CREATE_INVOICE))
        assert memory.recent_context("u1", "c1") == 'User intent: CREATE_INVOICE for message "bill Jane $5"'

    def test_empty(self, memory):
        assert memory.recent_context("nobody", "c1") == ""

    def test_custom_window(self):
        small = ConversationMemory(max_entries=3, context_entries=2)
        for i in range(5):
            small.append("u1", "c1", _turn(i))
        assert len(small.history("u1", "c1")) == 3
        assert len(small.recent_context("u1", "c1").split("\n\n")) == 2

    def test_zero_window_renders_nothing(self):
        quiet = ConversationMemory(max_entries=5, context_entries=0)
        for i in range(3):
            quiet.append("u1", "c1", _turn(i))
        assert len(quiet.history("u1", "c1")) == 3
        assert quiet.recent_context("u1", "c1") == ""


class TestPending:
    """Pending extracted data slot"""

    def test_overwrite_keeps_only_latest(self, memory):
        memory.set_pending("u1", "c1", {"clientName": "First"})
        memory.set_pending("u1", "c1", {"clientName": "Second"})

        assert memory.get_pending("u1", "c1") == {"clientName": "Second"}

    def test_clear_pending(self, memory):
        memory.set_pending("u1", "c1", {"clientName": "Jane"})
        memory.clear_pending("u1", "c1")
        assert memory.get_pending("u1", "c1") is None

    def test_pending_not_in_history_or_context(self, memory):
        memory.append("u1", "c1", _turn(1))
        memory.set_pending("u1", "c1", {"clientName": "Jane"})

        assert len(memory.history("u1", "c1")) == 1
        assert "Jane" not in memory.recent_context("u1", "c1")

    def test_returned_pending_is_a_copy(self, memory):
        memory.set_pending("u1", "c1", {"clientName": "Jane"})
        memory.get_pending("u1", "c1")["clientName"] = "Changed"
        assert memory.get_pending("u1", "c1") == {"clientName": "Jane"}
