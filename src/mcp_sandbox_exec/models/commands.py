"""Command record, log and status models."""

import time
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from mcp_sandbox_exec.utils.rich_error import ErrorDetails

StreamName = Literal["stdout", "stderr"]
CommandState = Literal["executing", "running", "waiting", "done", "error"]


def now_ms() -> int:
    """Current time as milliseconds since the epoch."""
    return int(time.time() * 1000)


class CommandRecord(BaseModel):
    """
    Persisted metadata for one command invocation.

    Serialized as ``meta.json`` with camelCase keys. ``exit_code`` being set
    marks the record as terminal.
    """

    model_config = ConfigDict(populate_by_name=True)

    sandbox_id: str = Field(..., alias="sandboxId")
    cmd_id: str = Field(..., alias="cmdId")
    started_at: int = Field(..., alias="startedAt", description="Record creation time (ms epoch)")
    pid: Optional[int] = Field(None, description="Process id of a locally started command")
    exit_code: Optional[int] = Field(None, alias="exitCode")
    trigger_run_id: Optional[str] = Field(None, alias="triggerRunId")

    @property
    def is_terminal(self) -> bool:
        """Whether the command has been finalized."""
        return self.exit_code is not None

    def to_json(self) -> str:
        """Serialize for storage, omitting unset optional fields."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class LogEntry(BaseModel):
    """One line of a command's NDJSON log."""

    data: str
    stream: StreamName
    timestamp: int


class CommandOutput(BaseModel):
    """Captured result of a command run to completion."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int


class CommandStatus(BaseModel):
    """Caller-facing status transition of a command."""

    sandbox_id: str
    command_id: Optional[str] = None
    command: str
    args: List[str] = Field(default_factory=list)
    status: CommandState
    exit_code: Optional[int] = None
    error: Optional[ErrorDetails] = None


class RunCommandPayload(BaseModel):
    """Input handed to a delegated worker."""

    model_config = ConfigDict(populate_by_name=True)

    sandbox_id: str = Field(..., alias="sandboxId")
    cmd_id: str = Field(..., alias="cmdId")
    command: str
    args: List[str] = Field(default_factory=list)
    sudo: bool = False


class TailChunk(BaseModel):
    """Result of one log tail poll."""

    data: str = ""
    cursor: int = 0
    complete: bool = False


class CommandSnapshot(BaseModel):
    """Point-in-time view of a command for status endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    sandbox_id: str = Field(..., alias="sandboxId")
    cmd_id: str = Field(..., alias="cmdId")
    started_at: int = Field(..., alias="startedAt")
    exit_code: Optional[int] = Field(None, alias="exitCode")
