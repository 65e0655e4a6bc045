"""funcs-builder — package a function's source tree into an image and publish it."""

from funcs_builder.__version__ import __version__

from funcs_builder.core.auth import build_auth
from funcs_builder.core.config import BuilderConfig
from funcs_builder.core.constants import BuildStage, OutcomeStatus, PipelineState
from funcs_builder.core.exceptions import (
    BuildError,
    ConfigurationError,
    DaemonError,
    FuncsBuilderError,
    InvalidRequestError,
    ProgressDeliveryError,
    TimeoutError,
    WalkError,
)
from funcs_builder.core.publisher import Publisher
from funcs_builder.core.types import (
    AuthDescriptor,
    BuildOutcome,
    BuildRequest,
    DaemonEvent,
    ImageHandle,
)
from funcs_builder.core.walker import walk
from funcs_builder.daemon.base import DaemonClient, DaemonProtocol
from funcs_builder.daemon.mock import MockDaemon
from funcs_builder.pipeline.pipeline import PublishPipeline
from funcs_builder.progress.sinks import (
    CallbackProgressSink,
    HttpProgressSink,
    InMemoryProgressSink,
    LoggingProgressSink,
    ProgressSink,
    QueueProgressSink,
)

__all__ = [
    "__version__",
    "Publisher",
    "PublishPipeline",
    "BuilderConfig",
    "BuildRequest",
    "AuthDescriptor",
    "ImageHandle",
    "DaemonEvent",
    "BuildOutcome",
    "BuildStage",
    "OutcomeStatus",
    "PipelineState",
    "FuncsBuilderError",
    "ConfigurationError",
    "InvalidRequestError",
    "WalkError",
    "DaemonError",
    "ProgressDeliveryError",
    "BuildError",
    "TimeoutError",
    "walk",
    "build_auth",
    "DaemonClient",
    "DaemonProtocol",
    "MockDaemon",
    # Progress sinks
    "ProgressSink",
    "InMemoryProgressSink",
    "LoggingProgressSink",
    "CallbackProgressSink",
    "QueueProgressSink",
    "HttpProgressSink",
]
