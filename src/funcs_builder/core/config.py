from __future__ import annotations

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, PositiveFloat, ValidationError

from funcs_builder.core.constants import (
    DEFAULT_DAEMON_URL,
    DEFAULT_PUSH_TAG,
    DEFAULT_WORKDIR,
)
from funcs_builder.core.exceptions import ConfigurationError


class BuilderConfig(BaseModel):
    daemon_url: str = DEFAULT_DAEMON_URL
    daemon_api_version: str = "auto"
    daemon_timeout: PositiveFloat = 60.0
    """Socket timeout in seconds for daemon calls and each read from a push stream."""
    build_timeout: PositiveFloat | None = 1800.0
    """Seconds allowed for the build event stream to drain (``None`` = unbounded)."""
    push_timeout: PositiveFloat | None = 900.0
    """Seconds allowed for the push event stream to drain (``None`` = unbounded)."""
    push_tag: str = Field(default=DEFAULT_PUSH_TAG, min_length=1)
    workdir: str = DEFAULT_WORKDIR
    forward_push_progress: bool = True
    forward_build_output: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @classmethod
    def from_env(cls) -> BuilderConfig:
        """Create a :class:`BuilderConfig` from ``FUNCS_*`` environment variables.

        Reads the following env vars (all optional):

        * ``FUNCS_DAEMON_URL`` → ``daemon_url``
        * ``FUNCS_DAEMON_TIMEOUT`` → ``daemon_timeout`` (seconds)
        * ``FUNCS_BUILD_TIMEOUT`` → ``build_timeout`` (seconds; ``none`` disables)
        * ``FUNCS_PUSH_TIMEOUT`` → ``push_timeout`` (seconds; ``none`` disables)
        * ``FUNCS_PUSH_TAG`` → ``push_tag``
        * ``FUNCS_LOG_LEVEL`` → ``log_level``

        Any variable that is not set or is empty is left at its default value.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        kwargs: dict[str, Any] = {}

        daemon_url = os.environ.get("FUNCS_DAEMON_URL")
        if daemon_url:
            kwargs["daemon_url"] = daemon_url

        daemon_timeout = os.environ.get("FUNCS_DAEMON_TIMEOUT")
        if daemon_timeout:
            kwargs["daemon_timeout"] = _parse_timeout("FUNCS_DAEMON_TIMEOUT", daemon_timeout)

        for var, field_name in (
            ("FUNCS_BUILD_TIMEOUT", "build_timeout"),
            ("FUNCS_PUSH_TIMEOUT", "push_timeout"),
        ):
            raw = os.environ.get(var)
            if raw:
                kwargs[field_name] = _parse_timeout(var, raw)

        push_tag = os.environ.get("FUNCS_PUSH_TAG")
        if push_tag:
            kwargs["push_tag"] = push_tag

        log_level = os.environ.get("FUNCS_LOG_LEVEL")
        if log_level:
            kwargs["log_level"] = log_level.upper()

        try:
            return cls(**kwargs)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid FUNCS_* environment: {exc}") from exc


def _parse_timeout(var: str, raw: str) -> float | None:
    if raw.strip().lower() in ("none", "off"):
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{var} must be a number of seconds, got {raw!r}") from exc
