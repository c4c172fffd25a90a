"""Command artifact storage inside the sandbox filesystem.

Each command owns a directory under ``<root>/cmds/<cmd_id>/`` holding
``meta.json`` (a CommandRecord) and ``logs.ndjson`` (its output log). The
sandbox filesystem is the only persistence layer, so an interactive session
and a delegated worker can both observe and update the same command.

There is no locking. Every update is a read-modify-write of ``meta.json``;
two overlapping calls for the same command can read the same base record
and the last writer wins. In practice the pid/run-id attach of the caller
and the worker's own attach are separated by the time it takes to dispatch
a task.
"""

import asyncio
import posixpath
from typing import List, Optional

from pydantic import ValidationError

from mcp_sandbox_exec.config import get_settings
from mcp_sandbox_exec.models.commands import CommandRecord, CommandSnapshot, LogEntry, now_ms
from mcp_sandbox_exec.sandbox.base import RemoteFilesystem, SandboxTransport
from mcp_sandbox_exec.sandbox.e2b_client import get_sandbox_transport
from mcp_sandbox_exec.utils import get_logger
from mcp_sandbox_exec.utils.exceptions import MetadataParseError

logger = get_logger(__name__)

META_FILENAME = "meta.json"
LOGS_FILENAME = "logs.ndjson"


class CommandArtifactStore:
    """Reads and writes command metadata and logs in a sandbox."""

    def __init__(
        self,
        transport: Optional[SandboxTransport] = None,
        root: Optional[str] = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            transport: Sandbox transport (defaults to the global transport)
            root: Artifact root inside the sandbox (defaults to settings)
        """
        self.transport = transport or get_sandbox_transport()
        self.root = root or get_settings().artifact_root

    def cmd_dir(self, cmd_id: str) -> str:
        """Directory holding a command's artifacts."""
        return posixpath.join(self.root, "cmds", cmd_id)

    def meta_path(self, cmd_id: str) -> str:
        """Path of a command's metadata file."""
        return posixpath.join(self.cmd_dir(cmd_id), META_FILENAME)

    def logs_path(self, cmd_id: str) -> str:
        """Path of a command's NDJSON log."""
        return posixpath.join(self.cmd_dir(cmd_id), LOGS_FILENAME)

    async def initialize(
        self,
        sandbox_id: str,
        cmd_id: str,
        trigger_run_id: Optional[str] = None,
        pid: Optional[int] = None,
    ) -> CommandRecord:
        """
        Create or update a command's record and make sure its log exists.

        Safe to call repeatedly: the record is merged, never replaced, and an
        existing log is never truncated. The metadata file is only rewritten
        when the record is new or an optional field was supplied.

        Args:
            sandbox_id: Sandbox ID
            cmd_id: Command ID
            trigger_run_id: Delegated worker run ID to attach
            pid: Background process ID to attach

        Returns:
            The merged record

        Raises:
            SandboxConnectionError: If the sandbox cannot be reached
            StorageError: If a remote filesystem operation fails
        """
        fs = await self.transport.connect(sandbox_id)
        await fs.make_dir(self.cmd_dir(cmd_id))

        existing = await self._read_record(fs, cmd_id)
        if existing is not None:
            record = existing.model_copy()
        else:
            record = CommandRecord(sandbox_id=sandbox_id, cmd_id=cmd_id, started_at=now_ms())

        if trigger_run_id and record.trigger_run_id != trigger_run_id:
            record.trigger_run_id = trigger_run_id

        if pid is not None and record.pid != pid:
            record.pid = pid

        writes = []
        if existing is None or trigger_run_id or pid is not None:
            writes.append(fs.write_file(self.meta_path(cmd_id), record.to_json()))

        existing_logs = await fs.read_file(self.logs_path(cmd_id))
        if existing_logs is None:
            writes.append(fs.write_file(self.logs_path(cmd_id), ""))

        await asyncio.gather(*writes)

        logger.debug(
            "Command artifacts initialized",
            extra={
                "sandbox_id": sandbox_id,
                "cmd_id": cmd_id,
                "created": existing is None,
                "pid": pid,
                "trigger_run_id": trigger_run_id,
            },
        )
        return record

    async def finalize(
        self,
        sandbox_id: str,
        cmd_id: str,
        exit_code: int,
        stdout: str,
        stderr: str,
    ) -> CommandRecord:
        """
        Record a command's exit code and write its output log.

        Meant to be called exactly once per command. Calling it again keeps
        the exit code but fully replaces the log.

        Args:
            sandbox_id: Sandbox ID
            cmd_id: Command ID
            exit_code: Exit code of the command
            stdout: Captured standard output
            stderr: Captured standard error

        Returns:
            The terminal record

        Raises:
            SandboxConnectionError: If the sandbox cannot be reached
            StorageError: If a remote filesystem operation fails
        """
        fs = await self.transport.connect(sandbox_id)
        await fs.make_dir(self.cmd_dir(cmd_id))

        existing = await self._read_record(fs, cmd_id)
        if existing is None:
            existing = CommandRecord(sandbox_id=sandbox_id, cmd_id=cmd_id, started_at=now_ms())
        updated = existing.model_copy(update={"exit_code": exit_code})

        await asyncio.gather(
            fs.write_file(self.meta_path(cmd_id), updated.to_json()),
            fs.write_file(self.logs_path(cmd_id), render_log(stdout, stderr)),
        )

        logger.info(
            "Command artifacts finalized",
            extra={"sandbox_id": sandbox_id, "cmd_id": cmd_id, "exit_code": exit_code},
        )
        return updated

    async def read_meta(self, sandbox_id: str, cmd_id: str) -> Optional[CommandRecord]:
        """
        Read a command's record.

        A missing file and unparseable content both yield None, so callers
        cannot tell corruption apart from a command that was never started.

        Returns:
            The record, or None
        """
        fs = await self.transport.connect(sandbox_id)
        return await self._read_record(fs, cmd_id)

    async def read_logs(self, sandbox_id: str, cmd_id: str) -> Optional[str]:
        """
        Read a command's full log.

        Returns:
            Log text ("" before finalization), or None if the log does not exist
        """
        fs = await self.transport.connect(sandbox_id)
        raw = await fs.read_file(self.logs_path(cmd_id))
        if raw is None:
            return None
        return raw.decode("utf-8", errors="replace")

    async def snapshot(self, sandbox_id: str, cmd_id: str) -> CommandSnapshot:
        """
        Summarize a command for status reporting.

        ``started_at`` falls back to now when no record exists yet.
        """
        meta = await self.read_meta(sandbox_id, cmd_id)
        return CommandSnapshot(
            sandbox_id=sandbox_id,
            cmd_id=cmd_id,
            started_at=meta.started_at if meta else now_ms(),
            exit_code=meta.exit_code if meta else None,
        )

    async def _read_record(self, fs: RemoteFilesystem, cmd_id: str) -> Optional[CommandRecord]:
        path = self.meta_path(cmd_id)
        raw = await fs.read_file(path)
        if raw is None:
            return None

        try:
            return parse_record(raw, path)
        except MetadataParseError as e:
            logger.warning(
                "Ignoring unreadable command metadata",
                extra={"path": path, "error": str(e.original_error)},
            )
            return None


def parse_record(raw: bytes, path: str) -> CommandRecord:
    """
    Parse stored metadata.

    Raises:
        MetadataParseError: If the content is not a valid record
    """
    try:
        return CommandRecord.model_validate_json(raw)
    except ValidationError as e:
        raise MetadataParseError(path, e) from e


def render_log(stdout: str, stderr: str) -> str:
    """
    Build NDJSON log content with one line per non-empty stream.

    Returns:
        Log content, each line newline-terminated ("" if both streams are empty)
    """
    lines: List[str] = []
    if stdout:
        lines.append(LogEntry(data=stdout, stream="stdout", timestamp=now_ms()).model_dump_json())
    if stderr:
        lines.append(LogEntry(data=stderr, stream="stderr", timestamp=now_ms()).model_dump_json())
    return "".join(line + "\n" for line in lines)



_artifact_store: Optional[CommandArtifactStore] = None


def get_artifact_store() -> CommandArtifactStore:
    """Get or create the global artifact store instance."""
    global _artifact_store
    if _artifact_store is None:
        _artifact_store = CommandArtifactStore()
    return _artifact_store
