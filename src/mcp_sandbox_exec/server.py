"""MCP Sandbox Exec server implementation using FastMCP 2."""

import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastmcp import FastMCP
from pydantic import BaseModel
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse

from mcp_sandbox_exec.auth import create_auth_provider
from mcp_sandbox_exec.config import get_settings
from mcp_sandbox_exec.managers.artifact_store import get_artifact_store
from mcp_sandbox_exec.managers.command_runner import get_command_runner
from mcp_sandbox_exec.managers.log_tail import get_log_tail_reader
from mcp_sandbox_exec.managers.task_dispatcher import InProcessTaskDispatcher, get_task_dispatcher
from mcp_sandbox_exec.mcp_tools import (
    CommandPollInput,
    CommandPollOutput,
    CommandStatusInput,
    CommandStatusOutput,
    RunCommandInput,
    RunCommandOutput,
    SandboxCreateInput,
    SandboxCreateOutput,
    SandboxUrlInput,
    SandboxUrlOutput,
)
from mcp_sandbox_exec.models.commands import CommandStatus
from mcp_sandbox_exec.sandbox.e2b_client import get_sandbox_transport
from mcp_sandbox_exec.utils import get_logger, setup_logging
from mcp_sandbox_exec.utils.audit_logger import AuditEventType, get_audit_logger
from mcp_sandbox_exec.utils.exceptions import PortNotReadyError, SandboxNotFoundError
from mcp_sandbox_exec.utils.rich_error import describe_error

VERSION = "0.1.0"

logger = get_logger(__name__)


class HealthCheckResponse(BaseModel):
    """Health check response model."""

    status: str
    background_mode: str
    version: str = VERSION


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Lifespan context manager for startup and shutdown tasks."""
    logger.info("Starting MCP Sandbox Exec server", extra={"version": VERSION})

    yield

    logger.info("Shutting down MCP Sandbox Exec server")

    dispatcher = get_task_dispatcher()
    if isinstance(dispatcher, InProcessTaskDispatcher) and dispatcher.active_runs:
        logger.warning(
            "Cancelling unfinished worker runs",
            extra={"run_ids": dispatcher.active_runs},
        )
        await dispatcher.shutdown()

    runner = get_command_runner()
    if runner.active_reapers:
        logger.warning(
            "Cancelling unfinished background waits",
            extra={"cmd_ids": runner.active_reapers},
        )
        await runner.shutdown()

    logger.info("MCP Sandbox Exec server stopped")


mcp = FastMCP("MCP Sandbox Exec", lifespan=lifespan)


@mcp.tool()
async def health() -> HealthCheckResponse:
    """
    Health check endpoint to verify server status.

    Returns:
        HealthCheckResponse with status and background execution mode
    """
    return HealthCheckResponse(
        status="healthy",
        background_mode=get_settings().background_mode,
    )


# ========== Command tools ==========


@mcp.tool()
async def run_command(input_data: RunCommandInput) -> RunCommandOutput:
    """
    Run a command in a sandbox, in the foreground or in the background.

    Args:
        input_data: Sandbox, command, arguments, sudo and wait flags

    Returns:
        RunCommandOutput with the outcome message and status transitions
    """
    logger.info(
        "Running command",
        extra={
            "sandbox_id": input_data.sandbox_id,
            "command": input_data.command,
            "wait": input_data.wait,
        },
    )

    events: List[CommandStatus] = []

    runner = get_command_runner()
    message = await runner.run_command(
        sandbox_id=input_data.sandbox_id,
        command=input_data.command,
        args=input_data.args,
        sudo=input_data.sudo,
        wait=input_data.wait,
        on_status=events.append,
    )

    last = events[-1]
    return RunCommandOutput(
        message=message,
        command_id=last.command_id,
        status=last.status,
        exit_code=last.exit_code,
        events=events,
    )


@mcp.tool()
async def command_status(input_data: CommandStatusInput) -> CommandStatusOutput:
    """
    Get the current status of a command.

    Args:
        input_data: Sandbox and command IDs

    Returns:
        CommandStatusOutput with start time and exit code (once finished)
    """
    try:
        snapshot = await get_artifact_store().snapshot(input_data.sandbox_id, input_data.cmd_id)
    except Exception as e:
        logger.error("Failed to read command status", extra={"error": str(e)})
        raise

    return CommandStatusOutput(
        sandbox_id=snapshot.sandbox_id,
        cmd_id=snapshot.cmd_id,
        started_at=snapshot.started_at,
        exit_code=snapshot.exit_code,
    )


@mcp.tool()
async def command_poll(input_data: CommandPollInput) -> CommandPollOutput:
    """
    Poll for command log output past a cursor.

    Args:
        input_data: Sandbox and command IDs plus the cursor from the previous poll

    Returns:
        CommandPollOutput with new log content and completion status
    """
    logger.debug(
        "Polling command",
        extra={
            "sandbox_id": input_data.sandbox_id,
            "cmd_id": input_data.cmd_id,
            "cursor": input_data.cursor,
        },
    )

    try:
        chunk = await get_log_tail_reader().read_since(
            input_data.sandbox_id, input_data.cmd_id, input_data.cursor
        )
    except Exception as e:
        logger.error("Failed to poll command", extra={"error": str(e)})
        raise

    return CommandPollOutput(data=chunk.data, cursor=chunk.cursor, complete=chunk.complete)


@mcp.tool()
async def sandbox_create(input_data: Optional[SandboxCreateInput] = None) -> SandboxCreateOutput:
    """
    Create a new sandbox from the configured template.

    Args:
        input_data: Optional sandbox lifetime (defaults to MCP_SANDBOX_TIMEOUT_S)

    Returns:
        SandboxCreateOutput with the sandbox ID
    """
    timeout_s = None
    if input_data is not None and input_data.timeout_ms is not None:
        timeout_s = input_data.timeout_ms // 1000

    try:
        sandbox = await get_sandbox_transport().create(timeout_s=timeout_s)
    except Exception as e:
        logger.error("Failed to create sandbox", extra={"error": str(e)})
        raise

    get_audit_logger().log_event(
        AuditEventType.SANDBOX_CREATE,
        sandbox_id=sandbox.sandbox_id,
        details={"timeout_s": timeout_s},
    )
    return SandboxCreateOutput(sandbox_id=sandbox.sandbox_id)


@mcp.tool()
async def sandbox_url(input_data: SandboxUrlInput) -> SandboxUrlOutput:
    """
    Get the public URL of a port exposed by a sandbox.

    Args:
        input_data: Sandbox ID, port, and whether and how long to wait for it

    Returns:
        SandboxUrlOutput with the URL, or a message describing the failure
    """
    try:
        sandbox = await get_sandbox_transport().connect(input_data.sandbox_id)
        if input_data.wait_for_port:
            ready = await sandbox.wait_for_port(input_data.port, input_data.timeout_ms)
            if not ready:
                raise PortNotReadyError(
                    input_data.sandbox_id, input_data.port, input_data.timeout_ms
                )
        url = f"https://{sandbox.get_host(input_data.port)}"
    except Exception as e:
        logger.error(
            "Failed to get sandbox URL",
            extra={"sandbox_id": input_data.sandbox_id, "port": input_data.port, "error": str(e)},
        )
        rich = describe_error(
            "get sandbox URL",
            e,
            {"sandboxId": input_data.sandbox_id, "port": input_data.port},
        )
        return SandboxUrlOutput(message=rich.message)

    return SandboxUrlOutput(url=url, message=f"Port {input_data.port} is available at {url}")


# ========== HTTP routes ==========


@mcp.custom_route("/sandboxes/{sandbox_id}", methods=["GET"])
async def sandbox_status_route(request: Request) -> JSONResponse:
    """Report whether a sandbox is reachable by running a trivial command in it."""
    sandbox_id = request.path_params["sandbox_id"]
    try:
        sandbox = await get_sandbox_transport().connect(sandbox_id)
        await sandbox.run("echo", ["sandbox status check"])
    except SandboxNotFoundError:
        return JSONResponse({"status": "stopped"})
    except Exception as e:
        logger.error(
            "Sandbox status check failed",
            extra={"sandbox_id": sandbox_id, "error": str(e)},
        )
        raise

    return JSONResponse({"status": "running"})


@mcp.custom_route("/sandboxes/{sandbox_id}/cmds/{cmd_id}", methods=["GET"])
async def command_status_route(request: Request) -> JSONResponse:
    """Return a command's status snapshot."""
    snapshot = await get_artifact_store().snapshot(
        request.path_params["sandbox_id"], request.path_params["cmd_id"]
    )
    return JSONResponse(snapshot.model_dump(by_alias=True, exclude_none=True))


@mcp.custom_route("/sandboxes/{sandbox_id}/cmds/{cmd_id}/logs", methods=["GET"])
async def command_logs_route(request: Request) -> StreamingResponse:
    """Stream a command's NDJSON log until the command finishes."""
    sandbox_id = request.path_params["sandbox_id"]
    cmd_id = request.path_params["cmd_id"]
    reader = get_log_tail_reader()

    async def body() -> AsyncIterator[bytes]:
        async for data in reader.follow(sandbox_id, cmd_id):
            yield data.encode("utf-8")

    return StreamingResponse(body(), media_type="application/x-ndjson")


@mcp.custom_route("/sandboxes/{sandbox_id}/files", methods=["GET"])
async def sandbox_file_route(request: Request) -> Response:
    """Return the raw content of a file in a sandbox."""
    sandbox_id = request.path_params["sandbox_id"]
    path = request.query_params.get("path")
    if not path:
        return JSONResponse(
            {"error": "Invalid parameters. You must pass a `path` as query"},
            status_code=400,
        )

    sandbox = await get_sandbox_transport().connect(sandbox_id)
    data = await sandbox.read_file(path)
    if data is None:
        return JSONResponse({"error": "File not found in the sandbox"}, status_code=404)

    return Response(content=data, media_type="application/octet-stream")


def main() -> None:
    """Main entry point for the MCP Sandbox Exec server."""
    settings = get_settings()

    setup_logging(log_level=settings.log_level, log_format=settings.log_format)

    mcp.auth = create_auth_provider()

    logger.info(
        "Starting server",
        extra={
            "transport": settings.transport_mode,
            "auth_mode": settings.auth_mode,
            "background_mode": settings.background_mode,
            "host": settings.host if settings.transport_mode != "stdio" else "N/A",
            "port": settings.port if settings.transport_mode != "stdio" else "N/A",
        },
    )

    try:
        # FastMCP names the streamable HTTP transport "streamable-http"
        run_kwargs = {"transport": settings.transport_mode}

        if settings.transport_mode in ("sse", "streamable-http"):
            run_kwargs["host"] = settings.host
            run_kwargs["port"] = settings.port
            run_kwargs["path"] = settings.path

        mcp.run(**run_kwargs)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down")
        sys.exit(0)
    except Exception as e:
        logger.error("Server error", extra={"error": str(e)})
        sys.exit(1)


if __name__ == "__main__":
    main()
