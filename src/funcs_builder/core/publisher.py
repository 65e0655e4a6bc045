from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

from pydantic import ValidationError

from funcs_builder.core.config import BuilderConfig
from funcs_builder.core.exceptions import ConfigurationError
from funcs_builder.core.types import BuildOutcome, BuildRequest
from funcs_builder.daemon.base import DaemonClient
from funcs_builder.pipeline.pipeline import PublishPipeline
from funcs_builder.progress.sinks import (
    LoggingProgressSink,
    ProgressSink,
    QueueProgressSink,
)
from funcs_builder.utils.async_helpers import run_sync
from funcs_builder.utils.logging import configure_logging


class Publisher:
    """Top-level entry point: owns a daemon connection and runs publish requests.

    Create via the :meth:`connect` factory method::

        publisher = await Publisher.connect(push_timeout=300)
        outcome = await publisher.publish(request, sink)

    Or use as an async context manager::

        async with await Publisher.connect() as publisher:
            async for line in publisher.stream(request):
                server_stream.write(line)
    """

    def __init__(self, *, config: BuilderConfig, daemon: DaemonClient) -> None:
        self._config = config
        self._daemon = daemon
        self._pipeline = PublishPipeline(daemon, config)

    def __repr__(self) -> str:
        return f"Publisher(daemon={self._daemon!r})"

    # ------------------------------------------------------------------ #
    # Factory
    # ------------------------------------------------------------------ #

    @classmethod
    async def connect(cls, *, setup_logging: bool = False, **kwargs: Any) -> Publisher:
        """Connect to the Docker daemon described by *kwargs*.

        Any :class:`BuilderConfig` field can be passed as a keyword argument.
        With ``setup_logging=True`` structlog is configured at
        ``config.log_level`` first.

        Raises:
            ConfigurationError: If a keyword argument is not a valid config value.
            DaemonError: If the daemon cannot be reached.
        """
        try:
            config = BuilderConfig(**kwargs)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid publisher configuration: {exc}") from exc

        if setup_logging:
            configure_logging(config.log_level)

        from funcs_builder.daemon.docker_engine import DockerDaemon  # noqa: PLC0415

        daemon = await asyncio.to_thread(DockerDaemon.from_config, config)
        return cls(config=config, daemon=daemon)

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> BuilderConfig:
        return self._config

    @property
    def pipeline(self) -> PublishPipeline:
        return self._pipeline

    # ------------------------------------------------------------------ #
    # Publishing
    # ------------------------------------------------------------------ #

    async def publish(
        self, request: BuildRequest, sink: ProgressSink | None = None
    ) -> BuildOutcome:
        """Run one request; progress goes to *sink* (structlog when omitted)."""
        if sink is None:
            sink = LoggingProgressSink(image=request.image)
        return await self._pipeline.run(request, sink)

    def publish_sync(
        self, request: BuildRequest, sink: ProgressSink | None = None
    ) -> BuildOutcome:
        """Blocking variant of :meth:`publish` for synchronous callers."""
        return run_sync(self.publish(request, sink))

    async def stream(self, request: BuildRequest) -> AsyncIterator[str]:
        """Yield progress lines while *request* runs.

        This is the shape a streaming RPC handler consumes.  Once the run
        ends, a failed outcome is raised as its :class:`BuildError` (or
        :class:`TimeoutError`); a published outcome simply ends iteration.
        Leaving the loop early cancels the run.
        """
        sink = QueueProgressSink()

        async def _run() -> BuildOutcome:
            try:
                return await self.publish(request, sink)
            finally:
                await sink.close()

        task = asyncio.create_task(_run())
        try:
            async for line in sink:
                yield line
            outcome = await task
        finally:
            if not task.done():
                task.cancel()
        outcome.raise_for_status()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def close(self) -> None:
        await self._daemon.close()

    async def __aenter__(self) -> Publisher:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()
