from __future__ import annotations

from typing import TYPE_CHECKING, Any

from funcs_builder.core.constants import BuildStage

if TYPE_CHECKING:
    from funcs_builder.core.types import BuildRequest


class FuncsBuilderError(Exception):
    """Base exception for all funcs-builder errors.

    Attributes:
        code: Optional machine-readable error code (e.g. ``"ERR_WALK"``).
        details: Arbitrary key/value context about the error.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ConfigurationError(FuncsBuilderError): ...


class InvalidRequestError(FuncsBuilderError): ...


class WalkError(FuncsBuilderError):
    """The source tree could not be traversed.

    Raised for any filesystem error met during the walk (permission denied,
    I/O error, root not a directory). The underlying ``OSError`` is chained.
    """


class DaemonError(FuncsBuilderError):
    """The container-build daemon rejected a call or reported an error event."""


class ProgressDeliveryError(FuncsBuilderError):
    """A progress sink could not hand a line to its consumer.

    The pipeline stops at the first undeliverable line and reports this error
    as the outcome, so the caller never silently misses progress.
    """


class _StageError(FuncsBuilderError):
    def __init__(
        self,
        message: str,
        *,
        image: str,
        registry: str,
        stage: BuildStage,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.image = image
        self.registry = registry
        self.stage = stage


class BuildError(_StageError):
    """Opaque failure of a publish request.

    ``str(error)`` never contains the daemon diagnostic; it only names the
    image and registry.  ``stage`` tells which part of the pipeline failed
    (``walk``, ``build`` or ``push``).
    """

    @classmethod
    def for_request(cls, request: BuildRequest, stage: BuildStage) -> BuildError:
        return cls(
            f"unable to publish image {request.image} to registry {request.registry}",
            image=request.image,
            registry=request.registry,
            stage=stage,
            code="ERR_PUBLISH",
        )


class TimeoutError(_StageError):
    """A daemon event stream did not complete within its deadline."""

    @classmethod
    def for_request(
        cls, request: BuildRequest, stage: BuildStage, seconds: float
    ) -> TimeoutError:
        return cls(
            f"timed out after {seconds:g}s during {stage} of image {request.image}",
            image=request.image,
            registry=request.registry,
            stage=stage,
            code="ERR_TIMEOUT",
            details={"timeout": seconds},
        )
