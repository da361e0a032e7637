# Test suite for conversation history persistence

import gzip
from datetime import datetime, timedelta

import pytest

from duckchat.agent.context.message import ContextKind, Message
from duckchat.exceptions.persistence import PersistenceError
from duckchat.persistence.history import (
    ConversationSession,
    HistoryManager,
    StoredMessage,
)


def conversation(*pairs):
    messages = []
    for question, answer in pairs:
        messages.append(Message.user(question))
        messages.append(Message.assistant(answer))
    return messages


def make_session(messages, session_id=None, start_time=None):
    return ConversationSession.from_transcript(
        messages,
        model="gpt-4o-mini",
        session_id=session_id,
        start_time=start_time or datetime.now(),
    )


class TestHistoryManager:
    """Test suite for HistoryManager"""

    @pytest.fixture
    def history(self, tmp_path):
        return HistoryManager(tmp_path / "sessions")

    def test_save_and_load(self, history):
        session = make_session(conversation(("hi", "hello")), session_id="abc")

        path = history.save_session(session)
        loaded = history.load_session("abc")

        assert path.name == "session_abc.json.gz"
        assert loaded.id == "abc"
        assert loaded.compressed is True
        assert loaded.end_time is not None
        assert loaded.analytics.message_count == 2
        assert [m.content for m in loaded.messages] == ["hi", "hello"]
        assert loaded.messages[1].kind is ContextKind.ASSISTANT

    def test_file_is_gzip_json(self, history):
        path = history.save_session(make_session(conversation(("q", "a")), session_id="gz"))
        with gzip.open(path, "rt", encoding="utf-8") as f:
            assert '"id": "gz"' in f.read()

    def test_load_plain_json(self, history):
        """Test uncompressed session files are still readable"""
        history.storage_dir.mkdir(parents=True)
        session = make_session(conversation(("q", "a")), session_id="plain")
        (history.storage_dir / "session_plain.json").write_text(
            session.model_dump_json(), encoding="utf-8"
        )

        assert history.load_session("plain").id == "plain"

    def test_load_missing(self, history):
        with pytest.raises(PersistenceError) as exc_info:
            history.load_session("nope")
        assert exc_info.value.operation == "load"

    def test_load_corrupted(self, history):
        history.storage_dir.mkdir(parents=True)
        (history.storage_dir / "session_bad.json").write_text("{", encoding="utf-8")
        with pytest.raises(PersistenceError):
            history.load_session("bad")

    def test_restore_prefers_optimized(self, history):
        """Test a repetitive transcript is restored from its optimized copy"""
        messages = [Message.user("same question") for _ in range(5)]
        messages.append(Message.assistant("answer"))
        history.save_session(make_session(messages, session_id="dups"))

        loaded = history.load_session("dups")
        restored = history.restore_session("dups")

        assert len(loaded.messages) == 6
        assert len(loaded.optimized_messages) == 2
        assert [m.content for m in restored] == ["same question", "answer"]
        assert loaded.analytics.optimizations_used == 1

    def test_restore_without_optimization(self, history):
        history.save_session(make_session(conversation(("a", "b")), session_id="small"))
        restored = history.restore_session("small")
        assert [m.content for m in restored] == ["a", "b"]

    def test_list_sessions_newest_first(self, history):
        now = datetime.now()
        history.save_session(make_session(conversation(("old", "x")), "s1", now - timedelta(hours=2)))
        history.save_session(make_session(conversation(("new", "y")), "s2", now))

        sessions = history.list_sessions()

        assert [s.id for s in sessions] == ["s2", "s1"]
        assert all(s.messages == [] for s in sessions)

    def test_list_skips_unreadable_files(self, history):
        history.save_session(make_session(conversation(("q", "a")), session_id="good"))
        (history.storage_dir / "session_broken.json.gz").write_bytes(b"not gzip")

        assert [s.id for s in history.list_sessions()] == ["good"]

    def test_invalid_utf8_file_is_skipped(self, history):
        """Test a file with undecodable bytes neither breaks listing nor saving"""
        history.storage_dir.mkdir(parents=True)
        (history.storage_dir / "session_bad.json").write_bytes(b'{"id": "\xff\xfe"}')

        history.save_session(make_session(conversation(("q", "a")), session_id="good"))

        assert [s.id for s in history.list_sessions()] == ["good"]
        with pytest.raises(PersistenceError) as exc_info:
            history.load_session("bad")
        assert isinstance(exc_info.value.original_error, UnicodeDecodeError)

    def test_damaged_gzip_stream_is_skipped(self, history):
        """Test a gzip file with a valid header but a garbled body is skipped"""
        path = history.save_session(make_session(conversation(("q", "a")), session_id="gz"))
        data = path.read_bytes()
        (history.storage_dir / "session_damaged.json.gz").write_bytes(
            data[:10] + bytes(b ^ 0xFF for b in data[10:])
        )

        assert [s.id for s in history.list_sessions()] == ["gz"]
        assert history.get_storage_stats().total_sessions == 1
        with pytest.raises(PersistenceError):
            history.load_session("damaged")

    def test_search_is_case_insensitive(self, history):
        history.save_session(make_session(conversation(("Tell me about Ducks", "ok")), "d"))
        history.save_session(make_session(conversation(("Geese?", "no")), "g"))

        assert [s.id for s in history.search_sessions("ducks")] == ["d"]
        assert history.search_sessions("swans") == []

    def test_session_summary(self, history):
        messages = conversation(
            ("How do I fix this python error?", "Check the error message."),
            ("Still a python error", "Share the code."),
        )
        history.save_session(make_session(messages, session_id="sum"))

        summary = history.get_session_summary("sum")

        assert summary.first_message == "How do I fix this python error?"
        assert summary.last_message == "Still a python error"
        assert summary.message_count == 4
        assert "error" in summary.key_topics
        assert "python" in summary.key_topics

    def test_extract_key_topics_needs_two_mentions(self):
        messages = [
            StoredMessage.from_message(Message.user("docker docker")),
            StoredMessage.from_message(Message.user("docker and sql")),
        ]
        assert HistoryManager.extract_key_topics(messages) == ["docker"]

    def test_retention_cleanup(self, history):
        """Test sessions past the retention window are pruned on save"""
        old = make_session(
            conversation(("ancient", "x")), "old", datetime.now() - timedelta(days=40)
        )
        history.save_session(old)

        assert not (history.storage_dir / "session_old.json.gz").exists()

    def test_max_sessions_cleanup(self, tmp_path):
        history = HistoryManager(tmp_path, max_sessions=2)
        now = datetime.now()
        for i in range(3):
            history.save_session(
                make_session(conversation((f"q{i}", "a")), f"s{i}", now - timedelta(minutes=10 - i))
            )

        assert [s.id for s in history.list_sessions()] == ["s2", "s1"]

    def test_storage_stats(self, history):
        assert history.get_storage_stats().total_sessions == 0

        history.save_session(make_session(conversation(("q", "a")), "one"))
        stats = history.get_storage_stats()

        assert stats.total_sessions == 1
        assert stats.compressed_sessions == 1
        assert stats.total_size_bytes > 0
        assert stats.oldest_session == stats.newest_session


class TestStoredMessage:
    def test_round_trip_keeps_kind(self):
        original = Message.search_context("ducks", "results")
        restored = StoredMessage.from_message(original).to_message()

        assert restored.kind is ContextKind.SEARCH_CONTEXT
        assert restored.content == original.content
        assert StoredMessage.from_message(original).role == "user"
