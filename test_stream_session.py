#!/usr/bin/env python3
"""
Tests for event dispatch, completion resolution and the session pipeline.
"""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from echo_client.exceptions import DecodeError, FrameTooLargeError, ProtocolError, TransportError
from echo_client.models import StreamResult
from echo_client.streaming.dispatcher import (
    CompletionResolver,
    EventDispatcher,
    StreamCallbacks,
)
from echo_client.streaming.models import (
    ErrorEvent,
    Metadata,
    RawFallback,
    StreamCompleted,
    StreamFailed,
    StreamState,
    Token,
    ToolCall,
)
from echo_client.streaming.session import StreamSession


async def chunks_from(*chunks: bytes):
    for chunk in chunks:
        yield chunk


def frames(*payloads: str) -> bytes:
    return "".join(f"data: {payload}\n\n" for payload in payloads).encode("utf-8")


def recording_callbacks() -> tuple[StreamCallbacks, list]:
    calls: list = []
    callbacks = StreamCallbacks(
        on_token=lambda text: calls.append(("token", text)),
        on_tool_call=lambda descriptor: calls.append(("tool_call", descriptor)),
        on_complete=lambda result: calls.append(("complete", result)),
        on_error=lambda message: calls.append(("error", message)),
    )
    return callbacks, calls


async def run_session(session: StreamSession, *chunks: bytes) -> list:
    return [item async for item in session.run(chunks_from(*chunks))]


class TestEventDispatcher:
    """Test the EventDispatcher class."""

    @pytest.mark.asyncio
    async def test_token_appends_and_calls_back(self):
        state = StreamState()
        on_token = Mock()
        dispatcher = EventDispatcher(state, StreamCallbacks(on_token=on_token))

        assert await dispatcher.dispatch(Token("Hello")) is False
        assert await dispatcher.dispatch(RawFallback(" there")) is False

        assert state.full_text == "Hello there"
        assert state.token_count == 2
        assert [c.args for c in on_token.call_args_list] == [("Hello",), (" there",)]

    @pytest.mark.asyncio
    async def test_metadata_records_conversation_without_callback(self):
        state = StreamState(conversation_id="old")
        callbacks, calls = recording_callbacks()
        dispatcher = EventDispatcher(state, callbacks)

        await dispatcher.dispatch(Metadata("new"))
        assert state.conversation_id == "new"

        await dispatcher.dispatch(Metadata(None))
        assert state.conversation_id == "new"
        assert calls == []

    @pytest.mark.asyncio
    async def test_tool_call(self):
        callbacks, calls = recording_callbacks()
        dispatcher = EventDispatcher(StreamState(), callbacks)
        descriptor = {"type": "tool_call", "tool": "lookup"}

        await dispatcher.dispatch(ToolCall(descriptor))
        assert calls == [("tool_call", descriptor)]

    @pytest.mark.asyncio
    async def test_error_event_terminates(self):
        state = StreamState()
        callbacks, calls = recording_callbacks()
        dispatcher = EventDispatcher(state, callbacks)

        assert await dispatcher.dispatch(ErrorEvent("boom")) is True
        assert state.terminated is True
        assert await dispatcher.dispatch(Token("late")) is True
        assert calls == [("error", "boom")]
        assert state.full_text == ""

    @pytest.mark.asyncio
    async def test_missing_callbacks_are_noops(self):
        dispatcher = EventDispatcher(StreamState())
        await dispatcher.dispatch(Token("a"))
        await dispatcher.dispatch(ToolCall({}))
        result = StreamResult(response="a", conversation_id=None)
        assert await dispatcher.dispatch(StreamCompleted(result)) is True

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self):
        on_token = AsyncMock()
        on_complete = AsyncMock()
        dispatcher = EventDispatcher(
            StreamState(), StreamCallbacks(on_token=on_token, on_complete=on_complete)
        )
        result = StreamResult(response="x", conversation_id="c")

        await dispatcher.dispatch(Token("x"))
        await dispatcher.dispatch(StreamCompleted(result))

        on_token.assert_awaited_once_with("x")
        on_complete.assert_awaited_once_with(result)

    @pytest.mark.asyncio
    async def test_failed_item_reports_message(self):
        callbacks, calls = recording_callbacks()
        dispatcher = EventDispatcher(StreamState(), callbacks)
        await dispatcher.dispatch(StreamFailed(TransportError("Service Unavailable")))
        assert calls == [("error", "Service Unavailable")]

    @pytest.mark.asyncio
    async def test_unknown_item_type(self):
        dispatcher = EventDispatcher(StreamState())
        with pytest.raises(TypeError, match="Unknown stream item"):
            await dispatcher.dispatch("token")


class TestCompletionResolver:
    """Test the CompletionResolver class."""

    def test_resolves_once(self):
        state = StreamState(full_text="done", conversation_id="c9")
        resolver = CompletionResolver(state)

        completed = resolver.resolve(sentinel_seen=True)
        assert completed.result == StreamResult(response="done", conversation_id="c9")
        assert completed.via == "sentinel"
        assert resolver.resolve(sentinel_seen=False) is None

    def test_eof_path(self):
        resolver = CompletionResolver(StreamState(full_text="partial"))
        assert resolver.resolve(sentinel_seen=False).via == "eof"

    def test_terminated_session_never_completes(self):
        state = StreamState(terminated=True)
        assert CompletionResolver(state).resolve(sentinel_seen=True) is None


class TestStreamSession:
    """Test the full decode, parse and dispatch pipeline."""

    @pytest.mark.asyncio
    async def test_hello_world(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks)

        items = await run_session(
            session,
            frames(
                '{"type":"token","content":"Hello, "}',
                '{"type":"token","content":"world"}',
                "[DONE]",
            ),
        )

        assert calls == [
            ("token", "Hello, "),
            ("token", "world"),
            ("complete", StreamResult(response="Hello, world", conversation_id=None)),
        ]
        assert isinstance(items[-1], StreamCompleted)
        assert items[-1].via == "sentinel"

    @pytest.mark.asyncio
    async def test_metadata_sets_conversation_id(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks)

        await run_session(
            session,
            frames(
                '{"type":"metadata","conversationId":"abc123"}',
                '{"type":"token","content":"Hi"}',
                "[DONE]",
            ),
        )

        assert calls[-1] == (
            "complete",
            StreamResult(response="Hi", conversation_id="abc123"),
        )

    @pytest.mark.asyncio
    async def test_initial_conversation_id_is_kept(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks, conversation_id="existing")

        await run_session(session, frames('{"type":"token","content":"x"}', "[DONE]"))

        assert calls[-1][1].conversation_id == "existing"

    @pytest.mark.asyncio
    async def test_log_context_follows_conversation_id(self):
        session = StreamSession(conversation_id="existing", session_id="s-1")
        assert session.logger.base_context == {
            "session_id": "s-1",
            "conversation_id": "existing",
        }

        await run_session(
            session,
            frames('{"type":"metadata","conversationId":"abc123"}', "[DONE]"),
        )

        assert session.logger.base_context == {
            "session_id": "s-1",
            "conversation_id": "abc123",
        }

    @pytest.mark.asyncio
    async def test_failure_log_carries_session_context(self):
        session = StreamSession(session_id="s-2")

        with patch("echo_client.streaming.session.StreamErrorHandler.log_failure") as log_failure:
            await run_session(
                session,
                frames(
                    '{"type":"metadata","conversationId":"abc123"}',
                    '{"type":"error","error":"boom"}',
                ),
            )

        error, operation, context = log_failure.call_args.args
        assert isinstance(error, ProtocolError)
        assert operation == "stream_session"
        assert context == {"session_id": "s-2", "conversation_id": "abc123"}

    @pytest.mark.asyncio
    async def test_error_frame_fails_session(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks)

        items = await run_session(
            session,
            frames(
                '{"type":"token","content":"partial "}',
                '{"type":"error","error":"quota exceeded"}',
                '{"type":"token","content":"never"}',
                "[DONE]",
            ),
        )

        assert calls == [("token", "partial "), ("error", "quota exceeded")]
        assert isinstance(items[-1], StreamFailed)
        assert isinstance(items[-1].error, ProtocolError)
        assert session.state.full_text == "partial "

    @pytest.mark.asyncio
    async def test_non_json_frame_keeps_stream_alive(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks)

        await run_session(
            session,
            frames("not-json", '{"type":"token","content":"!"}', "[DONE]"),
        )

        assert calls == [
            ("token", "not-json"),
            ("token", "!"),
            ("complete", StreamResult(response="not-json!", conversation_id=None)),
        ]

    @pytest.mark.asyncio
    async def test_exhaustion_without_sentinel_completes_once(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks)

        items = await run_session(
            session,
            frames('{"type":"token","content":"a"}'),
            frames('{"type":"token","content":"b"}'),
        )

        completions = [c for c in calls if c[0] == "complete"]
        assert completions == [("complete", StreamResult(response="ab", conversation_id=None))]
        assert items[-1].via == "eof"

    @pytest.mark.asyncio
    async def test_empty_stream_completes_with_empty_response(self):
        callbacks, calls = recording_callbacks()
        await run_session(StreamSession(callbacks))
        assert calls == [("complete", StreamResult(response="", conversation_id=None))]

    @pytest.mark.asyncio
    async def test_unterminated_trailing_frame_is_discarded(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks)

        await run_session(
            session,
            frames('{"type":"token","content":"kept"}') + b'data: {"type":"token","content":"lost"}',
        )

        assert calls[-1] == ("complete", StreamResult(response="kept", conversation_id=None))

    @pytest.mark.asyncio
    async def test_sentinel_stops_reading_source(self):
        pulled = []

        async def source():
            for chunk in (frames("[DONE]"), frames('{"type":"token","content":"x"}')):
                pulled.append(chunk)
                yield chunk

        callbacks, calls = recording_callbacks()
        items = [item async for item in StreamSession(callbacks).run(source())]

        assert len(pulled) == 1
        assert len(items) == 1
        assert calls == [("complete", StreamResult(response="", conversation_id=None))]

    @pytest.mark.asyncio
    async def test_chunk_boundary_invariance_with_multibyte_splits(self):
        raw = frames(
            '{"type":"metadata","conversationId":"c-1"}',
            '{"type":"token","content":"Grüße "}',
            "plain 🌍 text",
            '{"type":"token","content":"日本語"}',
            "[DONE]",
        )

        whole = StreamSession()
        await run_session(whole, raw)

        for size in (1, 2, 3, 5, 8):
            session = StreamSession()
            pieces = [raw[i:i + size] for i in range(0, len(raw), size)]
            await run_session(session, *pieces)
            assert session.state.full_text == whole.state.full_text
            assert session.state.conversation_id == "c-1"

        assert whole.state.full_text == "Grüße plain 🌍 text日本語"

    @pytest.mark.asyncio
    async def test_invalid_bytes_fail_session(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks)

        items = await run_session(
            session, frames('{"type":"token","content":"ok"}'), b"data: \xff\n\n"
        )

        assert calls[0] == ("token", "ok")
        assert calls[-1][0] == "error"
        assert isinstance(items[-1].error, DecodeError)
        assert not any(c[0] == "complete" for c in calls)

    @pytest.mark.asyncio
    async def test_stream_ending_inside_character_fails(self):
        callbacks, calls = recording_callbacks()
        await run_session(StreamSession(callbacks), frames("[x]")[:-2] + "é".encode()[:1])
        assert [c[0] for c in calls] == ["error"]

    @pytest.mark.asyncio
    async def test_overlong_line_fails_session(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks, max_line_size=32)

        items = await run_session(session, b"data: " + b"x" * 64)

        assert isinstance(items[-1].error, FrameTooLargeError)
        assert [c[0] for c in calls] == ["error"]

    @pytest.mark.asyncio
    async def test_mid_stream_transport_error_fails_session(self):
        async def broken():
            yield frames('{"type":"token","content":"a"}')
            raise TransportError("Stream read failed: connection reset")

        callbacks, calls = recording_callbacks()
        items = [item async for item in StreamSession(callbacks).run(broken())]

        assert calls == [("token", "a"), ("error", "Stream read failed: connection reset")]
        assert isinstance(items[-1], StreamFailed)

    @pytest.mark.asyncio
    async def test_cancellation_fires_no_terminal_callback(self):
        gate = asyncio.Event()

        async def stalled():
            yield frames('{"type":"token","content":"partial"}')
            await gate.wait()
            yield frames("[DONE]")

        callbacks, calls = recording_callbacks()

        async def consume():
            async for _ in StreamSession(callbacks).run(stalled()):
                pass

        task = asyncio.create_task(consume())
        for _ in range(10):
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert calls == [("token", "partial")]

    @pytest.mark.asyncio
    async def test_closing_consumer_early_fires_no_completion(self):
        callbacks, calls = recording_callbacks()
        session = StreamSession(callbacks)
        generator = session.run(
            chunks_from(frames('{"type":"token","content":"a"}', '{"type":"token","content":"b"}'))
        )

        first = await generator.__anext__()
        await generator.aclose()

        assert first == Token("a")
        assert calls == [("token", "a")]

    @pytest.mark.asyncio
    async def test_run_only_once(self):
        session = StreamSession()
        await run_session(session)
        with pytest.raises(RuntimeError, match="only be called once"):
            await run_session(session)

    @pytest.mark.asyncio
    async def test_callback_exceptions_propagate(self):
        def explode(_text):
            raise RuntimeError("ui crashed")

        session = StreamSession(StreamCallbacks(on_token=explode))
        with pytest.raises(RuntimeError, match="ui crashed"):
            await run_session(session, frames('{"type":"token","content":"a"}'))
