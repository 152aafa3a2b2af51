"""HTTP transport for the Echo stream endpoint."""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog

from .exceptions import TransportError
from .logging_utils import log_operation
from .models import StreamRequest

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 8192


def extract_error_message(response: httpx.Response, body: Any) -> str:
    """Pick the server's message from an error body, falling back to status text."""
    if isinstance(body, dict):
        for key in ("error", "message"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    return response.reason_phrase or f"Request failed: {response.status_code}"


class StreamTransport:
    """Opens one streaming POST per session. No retries."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        stream_path: str = "/echo/stream",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.client = client
        self.stream_path = stream_path
        self.chunk_size = chunk_size

    @asynccontextmanager
    async def open_stream(
        self,
        request: StreamRequest,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncGenerator[AsyncIterator[bytes]]:
        """
        Issue the request and yield the response byte chunks.

        Raises:
            TransportError: On connection failure or a non-success status.
        """
        request_headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            **(headers or {}),
        }

        response = await self._send(request, request_headers)
        try:
            if not response.is_success:
                await self._raise_for_status(response)

            logger.debug(
                "Stream opened",
                status_code=response.status_code,
                content_type=response.headers.get("content-type", ""),
            )
            yield self._iter_chunks(response)
        finally:
            await response.aclose()

    @log_operation("open_stream")
    async def _send(
        self, request: StreamRequest, headers: dict[str, str]
    ) -> httpx.Response:
        """Send the POST and return the response once its headers arrive."""
        http_request = self.client.build_request(
            "POST",
            self.stream_path,
            json=request.to_payload(),
            headers=headers,
        )
        try:
            return await self.client.send(http_request, stream=True)
        except httpx.RequestError as e:
            raise TransportError(f"Connection failed: {e}") from e

    async def _iter_chunks(self, response: httpx.Response) -> AsyncGenerator[bytes]:
        try:
            async for chunk in response.aiter_bytes(chunk_size=self.chunk_size):
                if chunk:
                    yield chunk
        except httpx.HTTPError as e:
            raise TransportError(f"Stream read failed: {e}") from e

    @staticmethod
    async def _raise_for_status(response: httpx.Response) -> None:
        body: Any = None
        try:
            await response.aread()
            body = response.json()
        except (httpx.HTTPError, ValueError):
            body = None

        message = extract_error_message(response, body)
        logger.error(
            "Stream request rejected",
            status_code=response.status_code,
            error_message=message,
        )
        raise TransportError(
            message,
            status_code=response.status_code,
            response_data=body if isinstance(body, dict) else None,
        )
