"""Manager modules for command tracking logic."""

from .artifact_store import CommandArtifactStore, get_artifact_store
from .command_runner import CommandRunner, get_command_runner
from .invocation import COMMAND_REWRITES, Invocation, build_invocation, normalize_command
from .log_tail import LogTailReader, get_log_tail_reader
from .task_dispatcher import (
    CommandWorker,
    InProcessTaskDispatcher,
    TaskDispatcher,
    TaskRunHandle,
    get_task_dispatcher,
)

__all__ = [
    "COMMAND_REWRITES",
    "CommandArtifactStore",
    "CommandRunner",
    "CommandWorker",
    "InProcessTaskDispatcher",
    "Invocation",
    "LogTailReader",
    "TaskDispatcher",
    "TaskRunHandle",
    "build_invocation",
    "get_artifact_store",
    "get_command_runner",
    "get_log_tail_reader",
    "get_task_dispatcher",
    "normalize_command",
]
