"""Command runner driving commands through their lifecycle in a sandbox."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from mcp_sandbox_exec.config import get_settings
from mcp_sandbox_exec.managers.artifact_store import CommandArtifactStore, get_artifact_store
from mcp_sandbox_exec.managers.invocation import build_invocation, normalize_command
from mcp_sandbox_exec.managers.task_dispatcher import TaskDispatcher, get_task_dispatcher
from mcp_sandbox_exec.models.commands import (
    CommandOutput,
    CommandState,
    CommandStatus,
    RunCommandPayload,
)
from mcp_sandbox_exec.sandbox.base import SandboxTransport
from mcp_sandbox_exec.sandbox.e2b_client import get_sandbox_transport
from mcp_sandbox_exec.utils import get_logger
from mcp_sandbox_exec.utils.audit_logger import AuditEventType, get_audit_logger
from mcp_sandbox_exec.utils.ids import new_command_id
from mcp_sandbox_exec.utils.rich_error import ErrorDetails, describe_error

logger = get_logger(__name__)

StatusCallback = Callable[[CommandStatus], Union[None, Awaitable[None]]]


class CommandRunner:
    """
    Runs commands in sandboxes and tracks them through the artifact store.

    Status transitions are ``executing -> waiting -> done`` for foreground
    runs and ``executing -> running`` for background runs. Any failed
    connect, start or run ends in ``error``. Failures never propagate: they
    are reported as an ``error`` status and returned as the result message.
    """

    def __init__(
        self,
        store: Optional[CommandArtifactStore] = None,
        transport: Optional[SandboxTransport] = None,
        dispatcher: Optional[TaskDispatcher] = None,
        background_mode: Optional[str] = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            store: Artifact store (defaults to the global store)
            transport: Sandbox transport (defaults to the global transport)
            dispatcher: Worker dispatcher for delegated background runs
            background_mode: "local" or "delegated" (defaults to settings)
        """
        self.settings = get_settings()
        self.store = store or get_artifact_store()
        self.transport = transport or get_sandbox_transport()
        self._dispatcher = dispatcher
        self.background_mode = background_mode or self.settings.background_mode

        # Reapers waiting on locally started background commands
        self._active_reapers: Dict[str, asyncio.Task] = {}

    @property
    def dispatcher(self) -> TaskDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_task_dispatcher()
        return self._dispatcher

    async def run_command(
        self,
        sandbox_id: str,
        command: str,
        args: Sequence[str] = (),
        sudo: bool = False,
        wait: bool = True,
        on_status: Optional[StatusCallback] = None,
    ) -> str:
        """
        Run a command in a sandbox.

        Args:
            sandbox_id: Sandbox ID
            command: Base command (no arguments)
            args: Command arguments, escaped by the transport
            sudo: Run the command through sudo
            wait: Block until the command finishes; otherwise start it in the background
            on_status: Callback receiving each status transition

        Returns:
            Message describing the outcome (including failures)
        """
        command, args = normalize_command(command, args)
        cmd_id = new_command_id()
        emitter = _StatusEmitter(sandbox_id, command, args, on_status)

        await emitter.emit("executing")

        try:
            await self.transport.connect(sandbox_id)
        except Exception as e:
            return await self._fail(emitter, "connect to sandbox", e, {"sandboxId": sandbox_id})

        emitter.command_id = cmd_id
        await emitter.emit("executing")

        audit_logger = get_audit_logger()
        audit_logger.log_event(
            AuditEventType.COMMAND_START,
            sandbox_id=sandbox_id,
            cmd_id=cmd_id,
            details={"command": command, "args": list(args), "wait": wait},
        )
        if sudo:
            audit_logger.log_event(
                AuditEventType.SECURITY_SUDO,
                sandbox_id=sandbox_id,
                cmd_id=cmd_id,
                details={"command": command},
            )

        if not wait:
            if self.background_mode == "local":
                return await self._start_local(emitter, sandbox_id, cmd_id, command, args, sudo)
            return await self._start_delegated(emitter, sandbox_id, cmd_id, command, args, sudo)

        return await self._run_foreground(emitter, sandbox_id, cmd_id, command, args, sudo)

    async def _run_foreground(
        self,
        emitter: "_StatusEmitter",
        sandbox_id: str,
        cmd_id: str,
        command: str,
        args: List[str],
        sudo: bool,
    ) -> str:
        await emitter.emit("waiting")

        try:
            await self.store.initialize(sandbox_id, cmd_id)
            sandbox = await self.transport.connect(sandbox_id)
            invocation = build_invocation(command, args, sudo)
            output = await sandbox.run(invocation.command, invocation.args)
            await self.store.finalize(
                sandbox_id, cmd_id, output.exit_code, output.stdout, output.stderr
            )
        except Exception as e:
            return await self._fail(
                emitter,
                "wait for command to finish",
                e,
                {"sandboxId": sandbox_id, "commandId": cmd_id},
            )

        get_audit_logger().log_event(
            AuditEventType.COMMAND_COMPLETE,
            sandbox_id=sandbox_id,
            cmd_id=cmd_id,
            details={"exit_code": output.exit_code},
        )
        await emitter.emit("done", exit_code=output.exit_code)

        return (
            f"The command `{_render(command, args)}` has finished with exit code "
            f"{output.exit_code}.\n"
            f"Stdout of the command was: \n```\n{output.stdout}\n```\n"
            f"Stderr of the command was: \n```\n{output.stderr}\n```"
        )

    async def _start_local(
        self,
        emitter: "_StatusEmitter",
        sandbox_id: str,
        cmd_id: str,
        command: str,
        args: List[str],
        sudo: bool,
    ) -> str:
        try:
            sandbox = await self.transport.connect(sandbox_id)
            invocation = build_invocation(command, args, sudo)

            await self.store.initialize(sandbox_id, cmd_id)
            pid = await sandbox.start(invocation.command, invocation.args)
            await self.store.initialize(sandbox_id, cmd_id, pid=pid)
        except Exception as e:
            return await self._fail(
                emitter,
                "start background command",
                e,
                {"sandboxId": sandbox_id, "cmdId": cmd_id},
            )

        self._active_reapers[cmd_id] = asyncio.create_task(
            self._reap(sandbox_id, cmd_id, pid)
        )

        get_audit_logger().log_event(
            AuditEventType.COMMAND_BACKGROUND,
            sandbox_id=sandbox_id,
            cmd_id=cmd_id,
            details={"mode": "local", "pid": pid},
        )
        await emitter.emit("running")

        return (
            f"The command `{_render(command, args)}` has been started in the background "
            f"in sandbox `{sandbox_id}` with commandId `{cmd_id}` (pid `{pid}`)."
        )

    async def _reap(self, sandbox_id: str, cmd_id: str, pid: int) -> Optional[CommandOutput]:
        """Wait for a locally started command and finalize its record."""
        try:
            sandbox = await self.transport.connect(sandbox_id)
            output = await sandbox.wait(pid)
            await self.store.finalize(
                sandbox_id, cmd_id, output.exit_code, output.stdout, output.stderr
            )
            return output
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The record stays non-terminal, which pollers can observe
            logger.error(
                "Failed to finalize background command",
                extra={"sandbox_id": sandbox_id, "cmd_id": cmd_id, "pid": pid, "error": str(e)},
            )
            return None
        finally:
            self._active_reapers.pop(cmd_id, None)

    async def _start_delegated(
        self,
        emitter: "_StatusEmitter",
        sandbox_id: str,
        cmd_id: str,
        command: str,
        args: List[str],
        sudo: bool,
    ) -> str:
        try:
            await self.store.initialize(sandbox_id, cmd_id)
            handle = await self.dispatcher.trigger(
                RunCommandPayload(
                    sandbox_id=sandbox_id,
                    cmd_id=cmd_id,
                    command=command,
                    args=args,
                    sudo=sudo,
                )
            )
            await self.store.initialize(sandbox_id, cmd_id, trigger_run_id=handle.id)
        except Exception as e:
            return await self._fail(
                emitter,
                "trigger background command",
                e,
                {"sandboxId": sandbox_id, "cmdId": cmd_id},
            )

        get_audit_logger().log_event(
            AuditEventType.COMMAND_BACKGROUND,
            sandbox_id=sandbox_id,
            cmd_id=cmd_id,
            details={"mode": "delegated", "trigger_run_id": handle.id},
        )
        await emitter.emit("running")

        return (
            f"The command `{_render(command, args)}` has been dispatched to run in the "
            f"background in sandbox `{sandbox_id}` with commandId `{cmd_id}` "
            f"(run `{handle.id}`)."
        )

    async def _fail(
        self,
        emitter: "_StatusEmitter",
        action: str,
        error: Exception,
        args: Dict[str, Any],
    ) -> str:
        rich_error = describe_error(action, error, args)

        logger.error(
            "Command failed",
            extra={"action": action, **args, "error": rich_error.error.message},
        )
        get_audit_logger().log_event(
            AuditEventType.COMMAND_ERROR,
            sandbox_id=emitter.sandbox_id,
            cmd_id=emitter.command_id,
            details={"action": action, "error": rich_error.error.message},
        )

        await emitter.emit("error", error=rich_error.error)
        return rich_error.message

    @property
    def active_reapers(self) -> List[str]:
        """Command IDs of local background commands still being awaited."""
        return list(self._active_reapers)

    async def wait_for_reaper(self, cmd_id: str) -> Optional[CommandOutput]:
        """
        Wait until a local background command has been finalized.

        Returns:
            The command output, or None if unknown, already done or failed
        """
        task = self._active_reapers.get(cmd_id)
        if task is None:
            return None
        return await task

    async def shutdown(self) -> None:
        """Cancel all pending background waits and wait for them to stop.

        Cancelled commands keep running in their sandbox; their records stay
        non-terminal.
        """
        tasks = list(self._active_reapers.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._active_reapers.clear()


class _StatusEmitter:
    """Builds and delivers status events for one command."""

    def __init__(
        self,
        sandbox_id: str,
        command: str,
        args: List[str],
        callback: Optional[StatusCallback],
    ) -> None:
        self.sandbox_id = sandbox_id
        self.command = command
        self.args = args
        self.command_id: Optional[str] = None
        self.callback = callback

    async def emit(
        self,
        status: CommandState,
        exit_code: Optional[int] = None,
        error: Optional[ErrorDetails] = None,
    ) -> CommandStatus:
        event = CommandStatus(
            sandbox_id=self.sandbox_id,
            command_id=self.command_id,
            command=self.command,
            args=list(self.args),
            status=status,
            exit_code=exit_code,
            error=error,
        )
        if self.callback is not None:
            result = self.callback(event)
            if inspect.isawaitable(result):
                await result
        return event


def _render(command: str, args: Sequence[str]) -> str:
    return " ".join([command, *args])


_command_runner: Optional[CommandRunner] = None


def get_command_runner() -> CommandRunner:
    """Get or create the global command runner instance."""
    global _command_runner
    if _command_runner is None:
        _command_runner = CommandRunner()
    return _command_runner
