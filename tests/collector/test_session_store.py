"""Tests for the partial-tolerant session store."""

from agent_conduct.collector import SessionStore


class TestReadSession:
    """Tests for reading session records."""

    def test_reads_session(self, storage):
        storage.session("ses_root", title="root")
        batch = SessionStore(storage.root).read_session("ses_root")
        assert batch.problems == []
        assert batch.records[0]["title"] == "root"

    def test_missing_session_is_a_problem(self, storage):
        batch = SessionStore(storage.root).read_session("ses_missing")
        assert batch.records == []
        assert "not found" in batch.problems[0]

    def test_half_written_session(self, storage):
        storage.raw("session/proj_test/ses_root.json", '{"id": "ses_ro')
        batch = SessionStore(storage.root).read_session("ses_root")
        assert batch.records == []
        assert "unreadable" in batch.problems[0]


class TestChildSessions:
    """Tests for finding delegated sessions."""

    def test_children_oldest_first(self, storage):
        storage.session("ses_root", created=1000)
        storage.session("ses_b", parent_id="ses_root", created=3000)
        storage.session("ses_a", parent_id="ses_root", created=2000)
        storage.session("ses_other", created=1500)

        batch = SessionStore(storage.root).child_sessions("ses_root")
        assert [r["id"] for r in batch.records] == ["ses_a", "ses_b"]

    def test_no_children(self, storage):
        storage.session("ses_root")
        batch = SessionStore(storage.root).child_sessions("ses_root")
        assert batch.records == []
        assert batch.problems == []

    def test_empty_storage(self, storage):
        batch = SessionStore(storage.root).child_sessions("ses_root")
        assert batch.records == []


class TestMessagesAndParts:
    """Tests for reading messages and parts."""

    def test_messages_sorted_by_creation(self, storage):
        storage.message("ses_root", "msg_b", "assistant", created=200)
        storage.message("ses_root", "msg_a", "user", created=100)
        batch = SessionStore(storage.root).read_messages("ses_root")
        assert [m["id"] for m in batch.records] == ["msg_a", "msg_b"]

    def test_parts_sorted_by_id(self, storage):
        storage.text_part("ses_root", "msg_a", "prt_02", "second", start=100)
        storage.text_part("ses_root", "msg_a", "prt_01", "first", start=200)
        batch = SessionStore(storage.root).read_parts("msg_a")
        assert [p["text"] for p in batch.records] == ["first", "second"]

    def test_non_object_record(self, storage):
        storage.raw("part/msg_a/prt_01.json", "[1, 2]")
        batch = SessionStore(storage.root).read_parts("msg_a")
        assert batch.records == []
        assert "not a JSON object" in batch.problems[0]

    def test_bad_record_does_not_hide_good_ones(self, storage):
        storage.text_part("ses_root", "msg_a", "prt_01", "ok", start=100)
        storage.raw("part/msg_a/prt_02.json", "{")
        batch = SessionStore(storage.root).read_parts("msg_a")
        assert len(batch.records) == 1
        assert len(batch.problems) == 1
