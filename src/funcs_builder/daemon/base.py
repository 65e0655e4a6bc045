from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncGenerator, Protocol, Sequence, runtime_checkable

from funcs_builder.core.types import AuthDescriptor, DaemonEvent, ImageHandle


@runtime_checkable
class DaemonProtocol(Protocol):
    """Structural type for any container-build daemon client.

    The pipeline accepts this Protocol so it works with any backend
    (DockerDaemon, MockDaemon, ...) without importing concrete classes.
    """

    async def build_image(self, context: str, files: Sequence[str], tag: str) -> Any: ...

    async def get_image(self, tag: str) -> ImageHandle: ...

    async def push_image(self, handle: ImageHandle, tag: str, auth: AuthDescriptor) -> Any: ...

    def follow_progress(self, stream: Any) -> AsyncGenerator[DaemonEvent, None]: ...


class DaemonClient(ABC):
    """Abstract base for daemon clients.

    ``build_image`` and ``push_image`` only start an operation: they return an
    opaque event stream that must be drained with :meth:`follow_progress`
    before the operation is complete.  Every transport or API failure is
    raised as :class:`~funcs_builder.core.exceptions.DaemonError`.
    """

    @abstractmethod
    async def build_image(self, context: str, files: Sequence[str], tag: str) -> Any:
        """Start building *tag* from the *files* found under *context*."""

    @abstractmethod
    async def get_image(self, tag: str) -> ImageHandle:
        """Resolve a handle to the local image named *tag*."""

    @abstractmethod
    async def push_image(self, handle: ImageHandle, tag: str, auth: AuthDescriptor) -> Any:
        """Start pushing *handle* to its registry under *tag*."""

    @abstractmethod
    def follow_progress(self, stream: Any) -> AsyncGenerator[DaemonEvent, None]:
        """Yield the events of *stream* until the daemon signals completion.

        The consumer may stop early with ``aclose()`` (after an error event,
        a timeout or cancellation); implementations release *stream* then.
        """

    async def close(self) -> None:
        """Release the daemon connection."""

    async def __aenter__(self) -> DaemonClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()
