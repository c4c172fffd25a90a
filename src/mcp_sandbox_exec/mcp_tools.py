"""MCP Tool input/output models for sandbox command tracking."""

from typing import List, Optional

from pydantic import BaseModel, Field

from mcp_sandbox_exec.models.commands import CommandStatus


class RunCommandInput(BaseModel):
    """Input model for run_command tool."""

    sandbox_id: str = Field(..., description="The ID of the sandbox to run the command in")
    command: str = Field(
        ...,
        description=(
            "The base command to run (e.g. 'npm', 'python', 'ls'). Do NOT include "
            "arguments here. Each command runs in a fresh shell, so 'cd' does not "
            "carry over to later commands."
        ),
    )
    args: List[str] = Field(
        default_factory=list,
        description="Arguments for the command, one string per argument",
    )
    sudo: bool = Field(default=False, description="Whether to run the command with sudo")
    wait: bool = Field(
        ...,
        description=(
            "Whether to wait for the command to finish. If false the command runs in "
            "the background and can be polled by its command ID."
        ),
    )


class RunCommandOutput(BaseModel):
    """Output model for run_command tool."""

    message: str = Field(..., description="Outcome of the command, including any error")
    command_id: Optional[str] = Field(None, description="Command ID (cmd_xxx) if one was assigned")
    status: str = Field(..., description="Last status reached (done, running or error)")
    exit_code: Optional[int] = Field(None, description="Exit code for finished foreground runs")
    events: List[CommandStatus] = Field(
        default_factory=list, description="Status transitions in order"
    )


class CommandStatusInput(BaseModel):
    """Input model for command_status tool."""

    sandbox_id: str = Field(..., description="Sandbox ID")
    cmd_id: str = Field(..., description="Command ID (cmd_xxx)")


class CommandStatusOutput(BaseModel):
    """Output model for command_status tool."""

    sandbox_id: str = Field(..., description="Sandbox ID")
    cmd_id: str = Field(..., description="Command ID")
    started_at: int = Field(..., description="Record creation time in ms since epoch")
    exit_code: Optional[int] = Field(None, description="Exit code once the command finished")


class CommandPollInput(BaseModel):
    """Input model for command_poll tool."""

    sandbox_id: str = Field(..., description="Sandbox ID")
    cmd_id: str = Field(..., description="Command ID (cmd_xxx)")
    cursor: int = Field(default=0, ge=0, description="Log characters already consumed")


class CommandPollOutput(BaseModel):
    """Output model for command_poll tool."""

    data: str = Field(..., description="NDJSON log content past the cursor")
    cursor: int = Field(..., description="Cursor to pass to the next poll")
    complete: bool = Field(..., description="Whether the command has finished")


class SandboxCreateInput(BaseModel):
    """Input model for sandbox_create tool."""

    timeout_ms: Optional[int] = Field(
        None,
        ge=600_000,
        le=2_700_000,
        description="Sandbox lifetime in milliseconds, 10 to 45 minutes (defaults to settings)",
    )


class SandboxCreateOutput(BaseModel):
    """Output model for sandbox_create tool."""

    sandbox_id: str = Field(..., description="ID of the new sandbox")


class SandboxUrlInput(BaseModel):
    """Input model for sandbox_url tool."""

    sandbox_id: str = Field(..., description="Sandbox ID")
    port: int = Field(..., ge=1, le=65535, description="Port the service listens on")
    wait_for_port: bool = Field(
        default=True,
        description="Wait until something listens on the port before returning the URL",
    )
    timeout_ms: int = Field(
        default=30_000,
        ge=1_000,
        le=120_000,
        description="How long to wait for the port in milliseconds",
    )


class SandboxUrlOutput(BaseModel):
    """Output model for sandbox_url tool."""

    url: Optional[str] = Field(None, description="Public URL of the port, if available")
    message: str = Field(..., description="Outcome, including any error")
