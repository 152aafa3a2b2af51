"""
Echo streaming chat client.

Consumer entry points for streamed Echo replies:
- ``stream_chat``: callback style, fires exactly one terminal callback
- ``iter_events``: pull style, yields events and one terminal item
- ``stream_design``: form-builder design conversation over the same stream
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncGenerator, Awaitable, Callable, Mapping
from typing import Any

import httpx

from .config import Configuration
from .exceptions import TransportError
from .logging_utils import (
    StreamErrorHandler,
    configure_logging,
    operation_context,
)
from .models import StreamRequest, StreamResult
from .streaming.dispatcher import StreamCallbacks
from .streaming.models import StreamCompleted, StreamFailed, StreamItem
from .streaming.session import StreamSession
from .transport import StreamTransport

HeaderSource = (
    Mapping[str, str]
    | Callable[[], Mapping[str, str] | Awaitable[Mapping[str, str]]]
    | None
)

DESIGN_SKILL = "forms"


async def resolve_headers(source: HeaderSource) -> dict[str, str]:
    """Resolve a header mapping or (async) header provider once per session."""
    if source is None:
        return {}
    if callable(source):
        headers = source()
        if inspect.isawaitable(headers):
            headers = await headers
        return dict(headers or {})
    return dict(source)


class EchoStreamClient:
    """Streams Echo chat replies and reconstructs them into typed events."""

    def __init__(
        self,
        config: Configuration | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        headers: HeaderSource = None,
    ):
        self.config = config or Configuration()
        configure_logging(self.config.get_logging_config())
        api_config = self.config.get_api_config()
        streaming_config = self.config.get_streaming_config()

        self.max_line_size: int = streaming_config["max_line_size"]
        self.headers = headers
        self._owns_client = http_client is None

        if http_client is None:
            timeouts = self.config.get_http_client_config()
            http_client = httpx.AsyncClient(
                base_url=api_config["base_url"],
                timeout=httpx.Timeout(
                    connect=timeouts["connect_timeout"],
                    read=timeouts["read_timeout"],
                    write=timeouts["write_timeout"],
                    pool=timeouts["pool_timeout"],
                ),
            )

        self.http_client = http_client
        self.transport = StreamTransport(
            http_client,
            stream_path=api_config["stream_path"],
            chunk_size=streaming_config["chunk_size"],
        )

    async def iter_events(
        self,
        request: StreamRequest,
        *,
        headers: HeaderSource = None,
        callbacks: StreamCallbacks | None = None,
    ) -> AsyncGenerator[StreamItem]:
        """
        Pull-style stream of events for one request.

        Yields Token, ToolCall, Metadata and RawFallback items in arrival
        order, then exactly one StreamCompleted or StreamFailed. Closing the
        generator early abandons the session without a terminal item.
        """
        session = StreamSession(
            callbacks,
            conversation_id=request.conversation_id,
            max_line_size=self.max_line_size,
        )
        resolved = await resolve_headers(headers if headers is not None else self.headers)

        try:
            async with self.transport.open_stream(request, resolved) as chunks:
                async for item in session.run(chunks):
                    yield item
        except TransportError as e:
            # Mid-stream transport failures are terminal items of the session.
            if session.state.terminated:
                raise
            StreamErrorHandler.log_failure(
                e, "open_stream", {"session_id": session.session_id}
            )
            failed = StreamFailed(e)
            await session.dispatcher.dispatch(failed)
            yield failed

    async def stream_chat(
        self,
        request: StreamRequest,
        callbacks: StreamCallbacks | None = None,
        *,
        headers: HeaderSource = None,
    ) -> StreamResult | None:
        """
        Stream one chat reply through ``callbacks``.

        Returns the completed result, or None when the session failed
        (``on_error`` has then been called).
        """
        result: StreamResult | None = None
        context = {
            "conversation_id": request.conversation_id,
            "skill": request.skill,
        }
        async with operation_context("stream_chat", context=context) as log:
            async for item in self.iter_events(request, headers=headers, callbacks=callbacks):
                match item:
                    case StreamCompleted(completed):
                        result = completed
                    case StreamFailed():
                        log.warning("Stream ended with error", error_message=item.message)
        return result

    async def stream_design(
        self,
        message: str,
        callbacks: StreamCallbacks | None = None,
        *,
        conversation_id: str | None = None,
        form_type: str | None = None,
        existing_fields: list[dict[str, Any]] | None = None,
        headers: HeaderSource = None,
    ) -> StreamResult | None:
        """Stream a form-builder design conversation routed to the forms skill."""
        request = StreamRequest(
            message=message,
            conversation_id=conversation_id,
            skill=DESIGN_SKILL,
            page_context={
                "pageType": "form-builder",
                "formType": form_type,
                "existingFields": existing_fields,
            },
        )
        return await self.stream_chat(request, callbacks, headers=headers)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> EchoStreamClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def stream_chat(
    request: StreamRequest,
    callbacks: StreamCallbacks | None = None,
    *,
    config: Configuration | None = None,
    headers: HeaderSource = None,
) -> StreamResult | None:
    """Stream one reply with a short-lived client."""
    async with EchoStreamClient(config, headers=headers) as client:
        return await client.stream_chat(request, callbacks)
