from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from funcs_builder.core.constants import (
    REGISTRY_SERVER_ADDRESS,
    OutcomeStatus,
    PipelineState,
)
from funcs_builder.core.exceptions import FuncsBuilderError


class BuildRequest(BaseModel):
    """One build-and-publish job.

    ``base_image`` and ``registry`` are informational: they are reported to
    the caller and used in error messages, but the daemon never sees them.
    """

    base_image: str = ""
    image: str
    source_path: str = ""
    registry: str = ""
    username: str | None = None
    secret: str | None = None
    token: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildRequest:
        """Build a request from either snake_case or the service's camelCase keys.

        ``pathToFunc`` is accepted as an alias for ``source_path``.
        """
        return cls(
            base_image=data.get("base_image", data.get("baseImage", "")),
            image=data.get("image", ""),
            source_path=data.get(
                "source_path", data.get("sourcePath", data.get("pathToFunc", ""))
            ),
            registry=data.get("registry", ""),
            username=data.get("username"),
            secret=data.get("secret"),
            token=data.get("token"),
        )

    def __repr__(self) -> str:
        # credentials stay out of logs and tracebacks
        return (
            f"BuildRequest(image={self.image!r}, source_path={self.source_path!r}, "
            f"registry={self.registry!r})"
        )


class AuthDescriptor(BaseModel):
    username: str | None = None
    password: str | None = None
    server_address: str = REGISTRY_SERVER_ADDRESS

    model_config = {"frozen": True}

    def to_docker(self) -> dict[str, str]:
        """Render the ``authconfig`` mapping expected by the daemon's push call.

        Absent fields are omitted; the registry decides whether that is enough.
        """
        result: dict[str, str] = {"serveraddress": self.server_address}
        if self.username is not None:
            result["username"] = self.username
        if self.password is not None:
            result["password"] = self.password
        return result

    def __repr__(self) -> str:
        return (
            f"AuthDescriptor(username={self.username!r}, "
            f"server_address={self.server_address!r})"
        )


class ImageHandle(BaseModel):
    """Reference to a locally built image, addressed by its tag."""

    name: str
    id: str | None = None

    model_config = {"frozen": True}


class DaemonEvent(BaseModel):
    """A single decoded progress record from a daemon event stream."""

    stream: str | None = None
    status: str | None = None
    progress: str | None = None
    id: str | None = None
    error: str | None = None
    error_detail: dict[str, Any] = Field(default_factory=dict)
    aux: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, data: dict[str, Any]) -> DaemonEvent:
        """Build from a decoded JSON message as emitted by the Docker engine."""
        detail = data.get("errorDetail") or {}
        error = data.get("error")
        if error is None and detail:
            error = detail.get("message") or "unknown daemon error"
        return cls(
            stream=data.get("stream"),
            status=data.get("status"),
            progress=data.get("progress"),
            id=data.get("id"),
            error=error,
            error_detail=detail,
            aux=data.get("aux") or {},
        )

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def describe(self) -> str | None:
        """Return a human-readable line for this event, or ``None`` if it carries none."""
        if self.error is not None:
            return f"error: {self.error}"
        if self.stream is not None:
            text = self.stream.rstrip("\r\n")
            return text or None
        if self.status is not None:
            parts = [f"{self.id}:" if self.id else "", self.status, self.progress or ""]
            return " ".join(p for p in parts if p)
        return None


class BuildOutcome(BaseModel):
    """Terminal result of one publish request."""

    status: OutcomeStatus
    image: str
    registry: str = ""
    error: FuncsBuilderError | None = None
    failed_state: PipelineState | None = None
    files: list[str] = Field(default_factory=list)
    latency_ms: int = 0

    model_config = {"arbitrary_types_allowed": True}

    @property
    def published(self) -> bool:
        return self.status == OutcomeStatus.PUBLISHED

    @property
    def reason(self) -> str | None:
        """The caller-facing failure message (``None`` when published)."""
        return str(self.error) if self.error is not None else None

    def raise_for_status(self) -> None:
        """Re-raise the wrapped error of a failed outcome; no-op when published."""
        if self.error is not None:
            raise self.error
