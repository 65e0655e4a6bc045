from __future__ import annotations

from enum import StrEnum

DEFAULT_DAEMON_URL = "unix:///var/run/docker.sock"
REGISTRY_SERVER_ADDRESS = "https://index.docker.io/v1"
DEFAULT_PUSH_TAG = "latest"
DEFAULT_WORKDIR = "/home/app"


class PipelineState(StrEnum):
    INIT = "init"
    WALKING = "walking"
    BUILDING = "building"
    PUSHING = "pushing"
    PUBLISHED = "published"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.PUBLISHED, PipelineState.FAILED)


class BuildStage(StrEnum):
    WALK = "walk"
    BUILD = "build"
    PUSH = "push"


class OutcomeStatus(StrEnum):
    PUBLISHED = "published"
    FAILED = "failed"
