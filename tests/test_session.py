# Test suite for the chat Session

import pytest

from duckchat.agent.context.message import ContextKind, Message
from duckchat.exceptions.config import ConfigError
from duckchat.exceptions.protocol import ExhaustedRetries, ProtocolError
from duckchat.protocol.events import EventTypes

from .conftest import EventRecorder, sse_body


class TestConversation:
    """Test suite for Session turns"""

    @pytest.mark.asyncio
    async def test_ask_records_both_turns(self, backend, make_session):
        backend.chat_script = [(200, sse_body("Hi ", "there"))]
        session = await make_session()

        reply = await session.ask("hello")

        assert reply == "Hi there"
        assert [(m.kind, m.content) for m in session.transcript] == [
            (ContextKind.USER, "hello"),
            (ContextKind.ASSISTANT, "Hi there"),
        ]

    @pytest.mark.asyncio
    async def test_stream_yields_chunks(self, backend, make_session, bus):
        backend.chat_script = [(200, sse_body("a", "b", "c"))]
        recorder = EventRecorder()
        await recorder.attach(bus, EventTypes.STREAM_CHUNK, EventTypes.RESPONSE_COMPLETE)
        session = await make_session()

        chunks = [chunk async for chunk in session.stream("go")]

        assert chunks == ["a", "b", "c"]
        assert recorder.count(EventTypes.STREAM_CHUNK) == 3
        assert recorder.events[-1] == (EventTypes.RESPONSE_COMPLETE, {"content": "abc"})

    @pytest.mark.asyncio
    async def test_transcript_sent_in_full(self, backend, make_session):
        session = await make_session()
        await session.ask("first")
        await session.ask("second")

        messages = backend.chat_requests[1]["json"]["messages"]
        assert [m["content"] for m in messages] == ["first", "ok", "second"]

    @pytest.mark.asyncio
    async def test_global_prompt_on_first_turn_only(self, backend, make_session):
        session = await make_session(global_prompt="Be brief.")
        await session.ask("one")
        await session.ask("two")

        assert session.transcript[0].content == "Be brief.\n\none"
        assert session.transcript[2].content == "two"

    @pytest.mark.asyncio
    async def test_blank_input_is_ignored(self, backend, make_session):
        session = await make_session()
        assert await session.ask("   ") == ""
        assert session.transcript == []
        assert backend.chat_requests == []

    @pytest.mark.asyncio
    async def test_empty_reply_not_recorded(self, backend, make_session):
        backend.chat_script = [(200, sse_body())]
        session = await make_session()

        assert await session.ask("hello") == ""
        assert len(session.transcript) == 1

    @pytest.mark.asyncio
    async def test_decode_warnings_are_emitted(self, backend, make_session, bus):
        backend.chat_script = [(200, "data: {broken\n\n" + sse_body("fine"))]
        recorder = EventRecorder()
        await recorder.attach(bus, EventTypes.WARNING)
        session = await make_session()

        assert await session.ask("hello") == "fine"
        assert recorder.count(EventTypes.WARNING) == 1


class TestFailures:
    """User turns survive failed sends"""

    @pytest.mark.asyncio
    async def test_exhausted_retries_keep_user_turn(self, backend, make_session):
        backend.chat_script = [(418, "blocked")]
        session = await make_session()

        with pytest.raises(ExhaustedRetries):
            await session.ask("are you there?")

        assert len(session.transcript) == 1
        assert session.transcript[0].content == "are you there?"
        assert session.analytics.interactions_failed == 1
        assert session.analytics.error_418_count == 4
        assert session.analytics.other_errors_count == 0

    @pytest.mark.asyncio
    async def test_hard_failure_counts_as_other_error(self, backend, make_session):
        backend.chat_script = [(500, "boom")]
        session = await make_session()

        with pytest.raises(ProtocolError):
            await session.ask("hello")

        assert session.analytics.other_errors_count == 1
        assert len(session.transcript) == 1

    @pytest.mark.asyncio
    async def test_session_recovers_after_failure(self, backend, make_session):
        backend.chat_script = [(500, "boom"), (200, sse_body("back"))]
        session = await make_session()

        with pytest.raises(ProtocolError):
            await session.ask("hello")
        assert await session.ask("again") == "back"
        assert [m.content for m in session.transcript] == ["hello", "again", "back"]


class TestSessionState:
    """Model switching, context and persistence"""

    @pytest.mark.asyncio
    async def test_change_model(self, backend, make_session):
        session = await make_session()

        alias = await session.change_model("3")
        await session.ask("hi")

        assert alias == "llama"
        assert session.model == "meta-llama/Llama-3.3-70B-Instruct-Turbo"
        assert backend.chat_requests[0]["json"]["model"] == session.model
        assert session.analytics.model_changes == 1

    @pytest.mark.asyncio
    async def test_change_model_rejects_unknown(self, make_session):
        session = await make_session()
        with pytest.raises(ConfigError):
            await session.change_model("gpt-9")
        assert session.model_alias == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_add_context(self, backend, make_session):
        session = await make_session()
        await session.add_context(Message.file_context("notes.txt", "remember"))
        await session.ask("what did I share?")

        sent = backend.chat_requests[0]["json"]["messages"]
        assert sent[0]["role"] == "user"
        assert sent[0]["content"].startswith("[File Context]")
        assert session.analytics.context_messages == 1

    @pytest.mark.asyncio
    async def test_long_transcript_is_optimized(self, backend, make_session, bus):
        recorder = EventRecorder()
        await recorder.attach(bus, EventTypes.CONTEXT_OPTIMIZED)
        session = await make_session()
        session.transcript = [Message.user(f"old {i}") for i in range(35)]

        await session.ask("new")

        assert recorder.count(EventTypes.CONTEXT_OPTIMIZED) == 1
        assert session.analytics.context_optimizations == 1

    @pytest.mark.asyncio
    async def test_oversized_turn_is_still_sent(self, backend, make_session):
        """Test a single turn larger than the budget is never optimized away"""
        session = await make_session(max_context_bytes=100)

        await session.ask("x" * 200)

        assert backend.chat_requests[0]["json"]["messages"] == [
            {"role": "user", "content": "x" * 200}
        ]

    @pytest.mark.asyncio
    async def test_optimization_keeps_new_turn_last(self, backend, make_session, bus):
        recorder = EventRecorder()
        await recorder.attach(bus, EventTypes.CONTEXT_OPTIMIZED)
        session = await make_session(max_context_bytes=300)
        session.transcript = [Message.user(f"earlier question {i} " * 3) for i in range(10)]

        await session.ask("y" * 250)

        sent = backend.chat_requests[0]["json"]["messages"]
        assert sent[-1] == {"role": "user", "content": "y" * 250}
        assert recorder.count(EventTypes.CONTEXT_OPTIMIZED) == 1
        assert session.transcript[-2].content == "y" * 250

    @pytest.mark.asyncio
    async def test_clear_empty_session(self, backend, make_session):
        session = await make_session()

        assert await session.clear() is False
        assert backend.bootstrap_count == 1

    @pytest.mark.asyncio
    async def test_clear_saves_and_resets(self, backend, make_session):
        session = await make_session()
        await session.ask("remember this")
        old_id = session.session_id

        assert await session.clear() is True

        assert session.transcript == []
        assert session.session_id != old_id
        assert backend.bootstrap_count == 2
        restored = session.history.restore_session(old_id)
        assert [m.content for m in restored] == ["remember this", "ok"]

    @pytest.mark.asyncio
    async def test_save_and_restore(self, backend, make_session):
        session = await make_session()
        await session.ask("persist me")
        assert await session.save() is True

        other = await make_session()
        count = await other.restore(session.session_id)

        assert count == 2
        assert other.transcript[0].content == "persist me"

    @pytest.mark.asyncio
    async def test_save_empty_transcript(self, make_session):
        session = await make_session()
        assert await session.save() is False
