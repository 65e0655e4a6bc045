from funcs_builder.progress.sinks import (
    CallbackProgressSink,
    HttpProgressSink,
    InMemoryProgressSink,
    LoggingProgressSink,
    ProgressSink,
    QueueProgressSink,
)

__all__ = [
    "CallbackProgressSink",
    "HttpProgressSink",
    "InMemoryProgressSink",
    "LoggingProgressSink",
    "ProgressSink",
    "QueueProgressSink",
]
