from __future__ import annotations

import asyncio
import os
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from funcs_builder.core.auth import build_auth
from funcs_builder.core.config import BuilderConfig
from funcs_builder.core.constants import BuildStage, OutcomeStatus, PipelineState
from funcs_builder.core.exceptions import (
    BuildError,
    DaemonError,
    FuncsBuilderError,
    InvalidRequestError,
    ProgressDeliveryError,
    TimeoutError,
    WalkError,
)
from funcs_builder.core.types import BuildOutcome, BuildRequest
from funcs_builder.core.walker import walk
from funcs_builder.daemon.base import DaemonProtocol
from funcs_builder.progress.sinks import ProgressSink
from funcs_builder.utils.logging import get_logger

logger = get_logger(__name__)

_STAGE_FOR_STATE: dict[PipelineState, BuildStage] = {
    PipelineState.WALKING: BuildStage.WALK,
    PipelineState.BUILDING: BuildStage.BUILD,
    PipelineState.PUSHING: BuildStage.PUSH,
}

_ALLOWED: dict[PipelineState, tuple[PipelineState, ...]] = {
    PipelineState.INIT: (
        PipelineState.WALKING,
        PipelineState.BUILDING,
        PipelineState.FAILED,
    ),
    PipelineState.WALKING: (PipelineState.BUILDING, PipelineState.FAILED),
    PipelineState.BUILDING: (PipelineState.PUSHING, PipelineState.FAILED),
    PipelineState.PUSHING: (PipelineState.PUBLISHED, PipelineState.FAILED),
}


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


def _validate(request: BuildRequest) -> None:
    if not request.image or not request.image.strip():
        raise InvalidRequestError("image must be a non-empty image reference")
    if any(ch.isspace() for ch in request.image):
        raise InvalidRequestError(f"image reference {request.image!r} contains whitespace")


@dataclass
class _Run:
    """Per-request bookkeeping.  Never shared between requests."""

    request: BuildRequest
    log: Any
    state: PipelineState = PipelineState.INIT
    files: list[str] = field(default_factory=list)
    started_ms: int = field(default_factory=_now_ms)

    def enter(self, state: PipelineState) -> None:
        if state not in _ALLOWED.get(self.state, ()):
            raise RuntimeError(f"illegal pipeline transition {self.state} -> {state}")
        self.log.debug("pipeline_transition", from_state=self.state, to_state=state)
        self.state = state

    @property
    def stage(self) -> BuildStage | None:
        return _STAGE_FOR_STATE.get(self.state)


class PublishPipeline:
    """Build a function's source tree into an image and publish it.

    The daemon client is injected, so one pipeline can serve any number of
    concurrent :meth:`run` calls; nothing request-specific is stored on the
    instance.

    Args:
        daemon: A :class:`~funcs_builder.daemon.base.DaemonClient` (or
            duck-typed equivalent).
        config: Timeouts, push tag and progress forwarding options.
    """

    def __init__(self, daemon: DaemonProtocol, config: BuilderConfig | None = None) -> None:
        self._daemon = daemon
        self._config = config or BuilderConfig()

    def __repr__(self) -> str:
        return f"PublishPipeline(daemon={self._daemon!r})"

    async def run(self, request: BuildRequest, sink: ProgressSink) -> BuildOutcome:
        """Walk, build, push and report exactly one outcome for *request*.

        Progress lines are written to *sink* in step order.  Any walk or
        daemon failure stops the run immediately: no further lines are
        written and a failed :class:`BuildOutcome` carrying a
        :class:`BuildError` is returned.  A stream that exceeds its deadline
        yields a :class:`TimeoutError` instead, and a sink that cannot deliver
        a line yields its :class:`ProgressDeliveryError`.  Nothing is retried.

        Raises:
            InvalidRequestError: If ``request.image`` is empty.  Raised before
                anything is written to *sink*.
        """
        _validate(request)
        run = _Run(
            request=request,
            log=logger.bind(image=request.image, registry=request.registry),
        )
        try:
            await self._prepare(run, sink)
            await self._build(run, sink)
            await self._push(run, sink)
        except WalkError as exc:
            return self._fail(run, BuildError.for_request(request, run.stage), exc)
        except DaemonError as exc:
            return self._fail(run, BuildError.for_request(request, run.stage), exc)
        except (TimeoutError, ProgressDeliveryError) as exc:
            return self._fail(run, exc, exc)

        run.enter(PipelineState.PUBLISHED)
        latency = _now_ms() - run.started_ms
        run.log.info("publish_complete", files=len(run.files), latency_ms=latency)
        return BuildOutcome(
            status=OutcomeStatus.PUBLISHED,
            image=request.image,
            registry=request.registry,
            files=run.files,
            latency_ms=latency,
        )

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #

    async def _prepare(self, run: _Run, sink: ProgressSink) -> None:
        request = run.request
        await sink.write(f"getting base image {request.base_image}")
        await sink.write("connecting to the builder daemon")
        await sink.write(f"setting destination image to {request.image}")

        has_func = bool(request.source_path) and await asyncio.to_thread(
            os.path.exists, request.source_path
        )
        await sink.write(f"checking path to func... has function? {str(has_func).lower()}")

        if has_func:
            run.enter(PipelineState.WALKING)
            await sink.write(
                f"adding {request.source_path} into workdir ({self._config.workdir})"
            )
            run.files = await asyncio.to_thread(walk, request.source_path)

        await sink.write(f"preparing image for publishing on {request.registry} registry")

    async def _build(self, run: _Run, sink: ProgressSink) -> None:
        request = run.request
        run.enter(PipelineState.BUILDING)
        stream = await self._daemon.build_image(
            context=request.source_path, files=run.files, tag=request.image
        )
        await self._drain(
            run,
            stream,
            sink,
            timeout=self._config.build_timeout,
            forward=self._config.forward_build_output,
        )
        await sink.write("build complete")

    async def _push(self, run: _Run, sink: ProgressSink) -> None:
        request = run.request
        handle = await self._daemon.get_image(request.image)

        await sink.write("obtaining authentication handler")
        auth = build_auth(request)

        run.enter(PipelineState.PUSHING)
        stream = await self._daemon.push_image(handle, tag=self._config.push_tag, auth=auth)
        await self._drain(
            run,
            stream,
            sink,
            timeout=self._config.push_timeout,
            forward=self._config.forward_push_progress,
        )
        await sink.write("push complete")

    # ------------------------------------------------------------------ #
    # Event streams
    # ------------------------------------------------------------------ #

    async def _drain(
        self,
        run: _Run,
        stream: Any,
        sink: ProgressSink,
        *,
        timeout: float | None,
        forward: bool,
    ) -> None:
        """Consume *stream* until the daemon signals completion.

        Raises:
            DaemonError: On the first error event.
            TimeoutError: If the stream is still open after *timeout* seconds.
        """
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                await self._consume(run, stream, sink, forward)
        except asyncio.TimeoutError:
            # Only our own deadline counts; a TimeoutError from below propagates.
            if not deadline.expired():
                raise
            raise TimeoutError.for_request(run.request, run.stage, timeout) from None

    async def _consume(
        self, run: _Run, stream: Any, sink: ProgressSink, forward: bool
    ) -> None:
        async with aclosing(self._daemon.follow_progress(stream)) as events:
            async for event in events:
                if event.is_error:
                    raise DaemonError(
                        event.error or "daemon error", details=event.error_detail
                    )
                line = event.describe()
                if line is None:
                    continue
                run.log.debug("daemon_event", stage=run.stage, line=line)
                if forward:
                    await sink.write(line)

    def _fail(
        self, run: _Run, error: FuncsBuilderError, cause: BaseException
    ) -> BuildOutcome:
        failed_state = run.state
        run.enter(PipelineState.FAILED)
        if error is not cause:
            error.__cause__ = cause
        latency = _now_ms() - run.started_ms
        run.log.error(
            "publish_failed",
            stage=_STAGE_FOR_STATE.get(failed_state),
            error=str(cause),
            error_type=type(cause).__name__,
            latency_ms=latency,
        )
        return BuildOutcome(
            status=OutcomeStatus.FAILED,
            image=run.request.image,
            registry=run.request.registry,
            error=error,
            failed_state=failed_state,
            files=run.files,
            latency_ms=latency,
        )
