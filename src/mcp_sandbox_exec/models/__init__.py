"""Data models for command tracking."""

from .commands import (
    CommandOutput,
    CommandRecord,
    CommandSnapshot,
    CommandStatus,
    LogEntry,
    RunCommandPayload,
    TailChunk,
    now_ms,
)

__all__ = [
    "CommandOutput",
    "CommandRecord",
    "CommandSnapshot",
    "CommandStatus",
    "LogEntry",
    "RunCommandPayload",
    "TailChunk",
    "now_ms",
]
