"""
One streaming session: decode, frame, classify and dispatch.

Each chunk is fully processed before the next one is requested. The
session yields every dispatched item, ending with exactly one terminal
item unless the consumer cancels it first.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, AsyncIterable

from ..exceptions import EchoStreamError, ProtocolError
from ..logging_utils import ContextualLogger, StreamErrorHandler
from .decoder import FrameDecoder
from .dispatcher import CompletionResolver, EventDispatcher, StreamCallbacks
from .lines import DEFAULT_MAX_LINE_SIZE
from .models import ErrorEvent, Metadata, StreamFailed, StreamItem, StreamState
from .parser import EventParser


class StreamSession:
    """Per-call pipeline state; never reused across sessions."""

    def __init__(
        self,
        callbacks: StreamCallbacks | None = None,
        *,
        conversation_id: str | None = None,
        max_line_size: int = DEFAULT_MAX_LINE_SIZE,
        session_id: str | None = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.state = StreamState(conversation_id=conversation_id)
        self.decoder = FrameDecoder()
        self.parser = EventParser(max_line_size)
        self.dispatcher = EventDispatcher(self.state, callbacks)
        self.resolver = CompletionResolver(self.state)
        self.logger = ContextualLogger({"session_id": self.session_id})
        if conversation_id:
            self.logger = self.logger.bind(conversation_id=conversation_id)
        self._started = False

    async def run(self, chunks: AsyncIterable[bytes]) -> AsyncGenerator[StreamItem]:
        """Consume ``chunks`` and yield dispatched items in frame-arrival order."""
        if self._started:
            raise RuntimeError("StreamSession.run() can only be called once")
        self._started = True

        self.logger.debug("Stream session started")
        try:
            async for chunk in chunks:
                text = self.decoder.decode(chunk)
                for event in self.parser.feed(text):
                    if isinstance(event, ErrorEvent):
                        raise ProtocolError(event.message)
                    await self.dispatcher.dispatch(event)
                    if isinstance(event, Metadata) and event.conversation_id:
                        self.logger = self.logger.bind(
                            conversation_id=self.state.conversation_id
                        )
                    yield event
                if self.parser.completed:
                    break

            if not self.parser.completed:
                self.decoder.flush()
                if self.parser.pending:
                    self.logger.warning(
                        "Discarding unterminated trailing frame",
                        size=len(self.parser.pending),
                    )

        except EchoStreamError as e:
            StreamErrorHandler.log_failure(
                e, "stream_session", self.logger.base_context
            )
            failed = StreamFailed(e)
            await self.dispatcher.dispatch(failed)
            yield failed
            return

        completed = self.resolver.resolve(sentinel_seen=self.parser.completed)
        if completed is None:
            return
        self.logger.debug(
            "Stream session completed",
            via=completed.via,
            tokens=self.state.token_count,
            **self.parser.get_stats(),
        )
        await self.dispatcher.dispatch(completed)
        yield completed
