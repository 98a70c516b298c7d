"""
Tests for conversation memory.
"""

from feedback_graph.conversation import ConversationState, SessionStore, extract_referenced_entities


class TestReferencedEntities:
    """Test entity extraction from result rows."""

    def test_id_and_type_columns(self):
        rows = [
            {"id": "U-1", "type": "User", "username": "alice"},
            {"issue_id": "I-7", "description": "battery drain"},
            {"id": "S-2", "labels": ["Solution"]},
        ]

        entities = extract_referenced_entities(rows)

        assert [(e.id, e.type) for e in entities] == [("U-1", "User"), ("I-7", "issue"), ("S-2", "Solution")]

    def test_rows_without_ids_are_ignored(self):
        rows = [{"product": "Pixel 8", "issue_count": 4}, {"issue_id": None}]
        assert extract_referenced_entities(rows) == []

    def test_row_data_is_kept_and_trimmed(self):
        rows = [{
            "issue_id": "I-3",
            "description": "x" * 500,
            "embedding": [0.1] * 1536,
            "report_count": 4,
        }]

        entity = extract_referenced_entities(rows)[0]

        assert entity.data["report_count"] == 4
        assert entity.data["description"] == "x" * 200 + "..."
        assert "embedding" not in entity.data
        assert rows[0]["description"] == "x" * 500

    def test_duplicates_and_limit(self):
        rows = [{"issue_id": f"I-{n % 4}"} for n in range(20)]
        assert len(extract_referenced_entities(rows)) == 4

        rows = [{"issue_id": f"I-{n}"} for n in range(20)]
        assert len(extract_referenced_entities(rows, limit=5)) == 5


class TestConversationState:
    """Test history and memory bookkeeping."""

    def test_history_is_bounded(self):
        state = ConversationState(max_turns=4)
        for n in range(3):
            state.record_question(f"q{n}")
            state.record_answer(f"a{n}")

        assert state.recent_history() == [
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
            {"role": "assistant", "content": "a2"},
        ]
        assert state.recent_history(1) == [{"role": "assistant", "content": "a2"}]
        assert state.recent_history(0) == []

    def test_update_memory(self):
        state = ConversationState()
        state.update_memory([{"issue_id": "I-1", "type": "battery"}])

        assert state.referenced_entities() == [
            {"id": "I-1", "type": "battery", "data": {"issue_id": "I-1", "type": "battery"}}
        ]
        assert state.get_state()["last_query_results"] == [{"issue_id": "I-1", "type": "battery"}]

        state.update_memory([])
        assert state.referenced_entities() == []

    def test_get_state_and_reset(self):
        state = ConversationState()
        state.record_question("Which users reported the most issues?")
        snapshot = state.get_state()

        assert snapshot["history"][0]["role"] == "user"
        assert snapshot["history"][0]["timestamp"]

        state.reset()
        assert state.get_state() == {"history": [], "last_query_results": [], "last_referenced_entities": []}


class TestSessionStore:
    """Test per-session isolation."""

    def test_sessions_are_isolated(self):
        store = SessionStore({"max_turns": 6})
        store.get("a").record_question("hello")

        assert store.get("a").max_turns == 6
        assert store.get("b").recent_history() == []
        assert store.get("a") is store.get("a")
        assert sorted(store.session_ids()) == ["a", "b"]

    def test_reset_and_drop(self):
        store = SessionStore()
        store.get().record_question("hello")

        store.reset()
        assert store.get().recent_history() == []

        store.drop("default")
        assert store.session_ids() == []
        store.drop("missing")
