from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Sequence

from funcs_builder.core.exceptions import DaemonError
from funcs_builder.core.types import AuthDescriptor, DaemonEvent, ImageHandle
from funcs_builder.daemon.base import DaemonClient


@dataclass
class _ScriptedStream:
    kind: str
    events: list[DaemonEvent] = field(default_factory=list)
    raise_after: DaemonError | None = None
    hang: bool = False


def _to_event(event: DaemonEvent | dict[str, Any]) -> DaemonEvent:
    return event if isinstance(event, DaemonEvent) else DaemonEvent.from_raw(event)


class MockDaemon(DaemonClient):
    """In-memory daemon for testing.

    Usage::

        daemon = MockDaemon()
        daemon.script_build({"stream": "Step 1/2 : FROM node\\n"})
        daemon.script_push({"status": "Pushed", "id": "abc"})

        outcome = await PublishPipeline(daemon).run(request, sink)
        assert daemon.call_count("push_image") == 1

    Failures::

        daemon.script_build({"error": "no Dockerfile"})   # error event
        daemon.fail("push_image", "denied")                # call raises DaemonError
        daemon.hang("push")                                # stream never completes
    """

    def __init__(self) -> None:
        self._build_events: list[DaemonEvent] = [
            DaemonEvent(stream="Successfully built mock\n")
        ]
        self._push_events: list[DaemonEvent] = [
            DaemonEvent(status="Pushed", id="mock")
        ]
        self._call_failures: dict[str, DaemonError] = {}
        self._stream_failures: dict[str, DaemonError] = {}
        self._hanging: set[str] = set()
        self._images: dict[str, ImageHandle] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    # ------------------------------------------------------------------ #
    # Scripting helpers
    # ------------------------------------------------------------------ #

    def script_build(self, *events: DaemonEvent | dict[str, Any]) -> None:
        """Replace the events emitted by the next build streams."""
        self._build_events = [_to_event(e) for e in events]

    def script_push(self, *events: DaemonEvent | dict[str, Any]) -> None:
        """Replace the events emitted by the next push streams."""
        self._push_events = [_to_event(e) for e in events]

    def fail(self, method: str, message: str = "daemon failure") -> None:
        """Make *method* raise :class:`DaemonError` when called."""
        self._call_failures[method] = DaemonError(message)

    def break_stream(self, kind: str, message: str = "connection reset") -> None:
        """Make the *kind* (``build``/``push``) stream raise after its scripted events."""
        self._stream_failures[kind] = DaemonError(message)

    def hang(self, kind: str) -> None:
        """Make the *kind* (``build``/``push``) stream block forever after its events."""
        self._hanging.add(kind)

    # ------------------------------------------------------------------ #
    # DaemonClient implementation
    # ------------------------------------------------------------------ #

    def _record(self, method: str, params: dict[str, Any]) -> None:
        self.calls.append((method, params))
        if method in self._call_failures:
            raise self._call_failures[method]

    def _stream(self, kind: str, events: list[DaemonEvent]) -> _ScriptedStream:
        return _ScriptedStream(
            kind=kind,
            events=list(events),
            raise_after=self._stream_failures.get(kind),
            hang=kind in self._hanging,
        )

    async def build_image(self, context: str, files: Sequence[str], tag: str) -> Any:
        self._record("build_image", {"context": context, "files": list(files), "tag": tag})
        if not any(e.is_error for e in self._build_events):
            self._images[tag] = ImageHandle(name=tag, id=f"sha256:mock-{len(self._images)}")
        return self._stream("build", self._build_events)

    async def get_image(self, tag: str) -> ImageHandle:
        self._record("get_image", {"tag": tag})
        try:
            return self._images[tag]
        except KeyError:
            raise DaemonError(f"No such image: {tag}") from None

    async def push_image(self, handle: ImageHandle, tag: str, auth: AuthDescriptor) -> Any:
        self._record("push_image", {"handle": handle, "tag": tag, "auth": auth})
        return self._stream("push", self._push_events)

    async def follow_progress(self, stream: Any) -> AsyncGenerator[DaemonEvent, None]:
        for event in stream.events:
            await asyncio.sleep(0)
            yield event
        if stream.raise_after is not None:
            raise stream.raise_after
        if stream.hang:
            await asyncio.Event().wait()

    async def close(self) -> None:
        self.closed = True

    # ------------------------------------------------------------------ #
    # Test helpers
    # ------------------------------------------------------------------ #

    def call_count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    def assert_called(self, method: str) -> None:
        methods = [c[0] for c in self.calls]
        assert method in methods, f"Expected call to '{method}', got: {methods}"

    def assert_not_called(self, method: str) -> None:
        methods = [c[0] for c in self.calls]
        assert method not in methods, f"Unexpected call to '{method}': {methods}"

    def last_params(self, method: str) -> dict[str, Any]:
        for m, params in reversed(self.calls):
            if m == method:
                return params
        raise KeyError(f"MockDaemon: '{method}' was never called")

    def reset(self) -> None:
        self.calls.clear()
        self._call_failures.clear()
        self._stream_failures.clear()
        self._hanging.clear()
        self._images.clear()
