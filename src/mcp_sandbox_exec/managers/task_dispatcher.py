"""Delegated execution of background commands.

A background command can be handed to a worker instead of being started
directly in the sandbox. The worker attaches its own run ID to the command
record, runs the command to completion and finalizes the record, so it
follows the same artifact contract as a foreground run.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, NamedTuple, Optional
from uuid import uuid4

from mcp_sandbox_exec.managers.artifact_store import CommandArtifactStore, get_artifact_store
from mcp_sandbox_exec.managers.invocation import build_invocation
from mcp_sandbox_exec.models.commands import RunCommandPayload
from mcp_sandbox_exec.sandbox.base import SandboxTransport
from mcp_sandbox_exec.sandbox.e2b_client import get_sandbox_transport
from mcp_sandbox_exec.utils import get_logger
from mcp_sandbox_exec.utils.audit_logger import AuditEventType, get_audit_logger

logger = get_logger(__name__)


class TaskRunHandle(NamedTuple):
    """Handle of a dispatched worker run."""

    id: str


class CommandWorker:
    """Runs a dispatched command and records its result."""

    def __init__(
        self,
        store: Optional[CommandArtifactStore] = None,
        transport: Optional[SandboxTransport] = None,
    ) -> None:
        """
        Initialize the worker.

        Args:
            store: Artifact store (defaults to the global store)
            transport: Sandbox transport (defaults to the global transport)
        """
        self.store = store or get_artifact_store()
        self.transport = transport or get_sandbox_transport()

    async def run(self, payload: RunCommandPayload, run_id: str) -> Dict[str, int]:
        """
        Initialize, run and finalize a command.

        Args:
            payload: Command to run
            run_id: ID of this worker run, attached to the command record

        Returns:
            ``{"exitCode": <exit code>}``

        Raises:
            SandboxConnectionError: If the sandbox cannot be reached
            ExecutionError: If the command cannot be run
            StorageError: If the artifacts cannot be written
        """
        context = {
            "trigger_run_id": run_id,
            "sandbox_id": payload.sandbox_id,
            "cmd_id": payload.cmd_id,
        }
        logger.info(
            "Worker run started",
            extra={**context, "command": payload.command, "sudo": payload.sudo},
        )

        invocation = build_invocation(payload.command, payload.args, payload.sudo)

        await self.store.initialize(payload.sandbox_id, payload.cmd_id, trigger_run_id=run_id)
        logger.info("Artifacts initialized", extra=context)

        sandbox = await self.transport.connect(payload.sandbox_id)
        logger.info("Connected to sandbox", extra=context)

        output = await sandbox.run(invocation.command, invocation.args)
        logger.info("Command completed", extra={**context, "exit_code": output.exit_code})

        await self.store.finalize(
            payload.sandbox_id,
            payload.cmd_id,
            output.exit_code,
            output.stdout,
            output.stderr,
        )
        logger.info("Artifacts finalized", extra=context)

        get_audit_logger().log_event(
            AuditEventType.WORKER_RUN,
            sandbox_id=payload.sandbox_id,
            cmd_id=payload.cmd_id,
            details={"run_id": run_id, "exit_code": output.exit_code},
        )

        return {"exitCode": output.exit_code}


class TaskDispatcher(ABC):
    """Hands background commands to a worker."""

    @abstractmethod
    async def trigger(self, payload: RunCommandPayload) -> TaskRunHandle:
        """
        Dispatch a command.

        Returns:
            Handle identifying the worker run
        """


class InProcessTaskDispatcher(TaskDispatcher):
    """Runs the worker as an asyncio task in the current process."""

    def __init__(self, worker: Optional[CommandWorker] = None) -> None:
        """
        Initialize the dispatcher.

        Args:
            worker: Worker to run commands with (created lazily if omitted)
        """
        self._worker = worker
        self._active_runs: Dict[str, asyncio.Task] = {}

    @property
    def worker(self) -> CommandWorker:
        if self._worker is None:
            self._worker = CommandWorker()
        return self._worker

    async def trigger(self, payload: RunCommandPayload) -> TaskRunHandle:
        run_id = f"run_{uuid4().hex}"

        task = asyncio.create_task(self.worker.run(payload, run_id))
        self._active_runs[run_id] = task
        task.add_done_callback(lambda t: self._on_done(run_id, payload, t))

        logger.info(
            "Worker run dispatched",
            extra={"trigger_run_id": run_id, "cmd_id": payload.cmd_id},
        )
        return TaskRunHandle(id=run_id)

    def _on_done(self, run_id: str, payload: RunCommandPayload, task: asyncio.Task) -> None:
        self._active_runs.pop(run_id, None)

        if task.cancelled():
            logger.warning("Worker run cancelled", extra={"trigger_run_id": run_id})
            return

        error = task.exception()
        if error is not None:
            logger.error(
                "Worker run failed",
                extra={
                    "trigger_run_id": run_id,
                    "sandbox_id": payload.sandbox_id,
                    "cmd_id": payload.cmd_id,
                    "error": str(error),
                },
            )

    @property
    def active_runs(self) -> list[str]:
        """IDs of runs that have not finished yet."""
        return list(self._active_runs)

    async def wait(self, run_id: str) -> Optional[Dict[str, int]]:
        """
        Wait for a run to finish.

        Returns:
            The worker result, or None if the run is unknown or already finished

        Raises:
            Exception: Whatever the worker run raised
        """
        task = self._active_runs.get(run_id)
        if task is None:
            return None
        return await task

    async def shutdown(self) -> None:
        """Cancel all active runs and wait for them to stop."""
        tasks = list(self._active_runs.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


_task_dispatcher: Optional[TaskDispatcher] = None


def get_task_dispatcher() -> TaskDispatcher:
    """Get or create the global task dispatcher instance."""
    global _task_dispatcher
    if _task_dispatcher is None:
        _task_dispatcher = InProcessTaskDispatcher()
    return _task_dispatcher
