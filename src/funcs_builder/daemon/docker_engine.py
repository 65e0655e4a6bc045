"""Daemon client backed by the Docker engine API (``docker`` SDK)."""

from __future__ import annotations

import asyncio
import threading
from typing import Any, AsyncGenerator, Callable, Iterable, Sequence, TypeVar

import docker
import requests
import structlog
from docker.errors import DockerException
from docker.utils import create_archive, parse_repository_tag

from funcs_builder.core.config import BuilderConfig
from funcs_builder.core.constants import DEFAULT_DAEMON_URL
from funcs_builder.core.exceptions import DaemonError
from funcs_builder.core.types import AuthDescriptor, DaemonEvent, ImageHandle
from funcs_builder.daemon.base import DaemonClient

logger = structlog.get_logger(__name__)

_T = TypeVar("_T")
_END = object()

# requests errors are OSErrors already; OSError also covers unreadable context files.
_TRANSPORT_ERRORS = (DockerException, requests.exceptions.RequestException, OSError)


class DockerDaemon(DaemonClient):
    """Talks to a local Docker engine through :class:`docker.APIClient`.

    The low-level client is blocking; every call and every read from an
    event stream runs in a worker thread so several pipelines can share one
    event loop.  Reads are bounded by socket timeouts (``api.timeout`` for
    calls and push streams, *build_timeout* for build streams), so a hung
    daemon never pins a worker thread for longer than that.

    Args:
        api: A ready :class:`docker.APIClient`.  Use :meth:`from_config` to
            create one from a :class:`BuilderConfig`.
        build_timeout: Socket read timeout for the build stream, in seconds.
            ``None`` uses no timeout, matching the Docker SDK.
    """

    def __init__(
        self, api: docker.APIClient, *, build_timeout: float | None = None
    ) -> None:
        self._api = api
        self._build_timeout = build_timeout

    def __repr__(self) -> str:
        return f"DockerDaemon(base_url={self._api.base_url!r})"

    @classmethod
    def from_config(cls, config: BuilderConfig | None = None) -> DockerDaemon:
        """Open a client against ``config.daemon_url``.

        Raises:
            DaemonError: If the daemon cannot be reached (``version="auto"``
                negotiates the API version on connect).
        """
        config = config or BuilderConfig()
        try:
            api = docker.APIClient(
                base_url=config.daemon_url or DEFAULT_DAEMON_URL,
                version=config.daemon_api_version,
                timeout=config.daemon_timeout,
            )
        except _TRANSPORT_ERRORS as exc:
            raise DaemonError(
                f"unable to connect to the builder daemon at {config.daemon_url}",
                details={"daemon_url": config.daemon_url},
            ) from exc
        return cls(api, build_timeout=config.build_timeout)

    async def _call(self, operation: str, fn: Callable[[], _T]) -> _T:
        try:
            return await asyncio.to_thread(fn)
        except _TRANSPORT_ERRORS as exc:
            logger.debug("daemon_call_failed", operation=operation, error=str(exc))
            raise DaemonError(f"{operation} failed: {exc}") from exc

    async def build_image(self, context: str, files: Sequence[str], tag: str) -> Any:
        manifest = list(files)

        def _start() -> Any:
            # Only the manifest goes into the context tar, never the whole directory.
            fileobj = create_archive(context, files=manifest)
            try:
                return self._api.build(
                    fileobj=fileobj,
                    custom_context=True,
                    tag=tag,
                    rm=True,
                    decode=True,
                    timeout=self._build_timeout,
                )
            finally:
                fileobj.close()

        return await self._call("build", _start)

    async def get_image(self, tag: str) -> ImageHandle:
        info = await self._call("inspect", lambda: self._api.inspect_image(tag))
        return ImageHandle(name=tag, id=info.get("Id"))

    async def push_image(self, handle: ImageHandle, tag: str, auth: AuthDescriptor) -> Any:
        repository, _ = parse_repository_tag(handle.name)

        def _start() -> Any:
            self._api.tag(handle.id or handle.name, repository, tag=tag)
            return self._api.push(
                repository,
                tag=tag,
                stream=True,
                decode=True,
                auth_config=auth.to_docker(),
            )

        return await self._call("push", _start)

    async def follow_progress(self, stream: Any) -> AsyncGenerator[DaemonEvent, None]:
        reader = _StreamReader(stream)
        try:
            while True:
                try:
                    raw = await asyncio.to_thread(reader.read)
                except _TRANSPORT_ERRORS as exc:
                    raise DaemonError(f"event stream failed: {exc}") from exc
                if raw is _END:
                    return
                if isinstance(raw, dict):
                    yield DaemonEvent.from_raw(raw)
                elif isinstance(raw, bytes):
                    yield DaemonEvent(stream=raw.decode("utf-8", errors="replace"))
                else:
                    yield DaemonEvent(stream=str(raw))
        finally:
            reader.close()

    async def close(self) -> None:
        await asyncio.to_thread(self._api.close)


class _StreamReader:
    """Reads a blocking event stream one item at a time from worker threads.

    A cancelled ``asyncio.to_thread`` cannot interrupt a read already in
    flight, so :meth:`close` defers closing the stream to that read's thread.
    """

    def __init__(self, stream: Iterable[Any]) -> None:
        self._iterator = iter(stream)
        self._lock = threading.Lock()
        self._reading = False
        self._closed = False

    def read(self) -> Any:
        with self._lock:
            if self._closed:
                return _END
            self._reading = True
        try:
            return next(self._iterator, _END)
        finally:
            with self._lock:
                self._reading = False
                if self._closed:
                    self._release()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if not self._reading:
                self._release()

    def _release(self) -> None:
        close = getattr(self._iterator, "close", None)
        if close is not None:
            close()
