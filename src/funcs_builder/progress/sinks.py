"""Progress sinks: where the pipeline's human-readable status lines go."""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable

import httpx
import structlog

from funcs_builder.core.exceptions import ProgressDeliveryError

logger = structlog.get_logger(__name__)


class ProgressSink(ABC):
    """Write-only channel for status lines, owned by the caller.

    Lines must be delivered in the order they are written.  Subclass this to
    forward progress to a transport (a gRPC server stream, a websocket, ...).
    """

    @abstractmethod
    async def write(self, line: str) -> None:
        """Deliver a single status line.

        Raises:
            ProgressDeliveryError: If the line cannot reach the consumer.
        """

    async def close(self) -> None:
        """Release resources held by the sink."""


class InMemoryProgressSink(ProgressSink):
    """Keeps every line in a list.  Handy in tests."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    async def write(self, line: str) -> None:
        self._lines.append(line)

    @property
    def lines(self) -> list[str]:
        """Return all written lines (oldest first)."""
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class LoggingProgressSink(ProgressSink):
    """Sink that emits each line via :mod:`structlog`."""

    def __init__(self, log_level: str = "info", **context: Any) -> None:
        self._log_level = log_level
        self._logger = structlog.get_logger("funcs_builder.progress").bind(**context)

    async def write(self, line: str) -> None:
        log_fn = getattr(self._logger, self._log_level, self._logger.info)
        log_fn("progress", line=line)


class CallbackProgressSink(ProgressSink):
    """Wraps a plain or async callable, e.g. ``server_stream.write``."""

    def __init__(self, callback: Callable[[str], Awaitable[Any] | Any]) -> None:
        self._callback = callback

    async def write(self, line: str) -> None:
        result = self._callback(line)
        if inspect.isawaitable(result):
            await result


class QueueProgressSink(ProgressSink):
    """Buffers lines on an :class:`asyncio.Queue` for a concurrent consumer.

    Iterate with ``async for line in sink`` from another task; iteration ends
    once :meth:`close` has been called and the queue is drained.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def write(self, line: str) -> None:
        if self._closed:
            raise RuntimeError("QueueProgressSink is closed")
        await self._queue.put(line)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._queue.put(None)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[str]:
        while True:
            line = await self._queue.get()
            if line is None:
                break
            yield line


class HttpProgressSink(ProgressSink):
    """POSTs each line as JSON (``{"line": ...}``) to a remote endpoint.

    A line is never dropped: a failed POST (transport error or non-2xx
    response) raises :class:`ProgressDeliveryError`, which stops the
    pipeline with a failed outcome.

    Args:
        url: Endpoint receiving the lines.
        headers: Extra request headers (auth tokens etc).
        client: Optional pre-configured :class:`httpx.AsyncClient`.  When
            omitted the sink owns a client and closes it in :meth:`close`.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def write(self, line: str) -> None:
        try:
            resp = await self._client.post(
                self._url, json={"line": line}, headers=self._headers
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("progress_delivery_failed", url=self._url, error=str(exc))
            raise ProgressDeliveryError(
                f"unable to deliver progress to {self._url}: {exc}",
                code="ERR_PROGRESS_DELIVERY",
                details={"url": self._url},
            ) from exc

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
