"""Poll-based tailing of command logs."""

import asyncio
from typing import AsyncIterator, Optional

from mcp_sandbox_exec.config import get_settings
from mcp_sandbox_exec.managers.artifact_store import CommandArtifactStore, get_artifact_store
from mcp_sandbox_exec.models.commands import TailChunk
from mcp_sandbox_exec.utils import get_logger

logger = get_logger(__name__)


class LogTailReader:
    """
    Incrementally reads a command's growing log.

    The cursor is the number of characters already delivered and never moves
    backwards. Logs are only written at finalization today, but the reader
    works the same for a log that grows in several steps.

    Finalization writes the metadata and the log concurrently, so a poll can
    see the exit code while the log still holds its initial empty content.
    A tail that reaches a finished command without having seen any output
    keeps polling for up to ``settle_s`` for the log write to land.
    """

    def __init__(
        self,
        store: Optional[CommandArtifactStore] = None,
        poll_interval_s: Optional[float] = None,
        settle_s: Optional[float] = None,
    ) -> None:
        """
        Initialize the reader.

        Args:
            store: Artifact store (defaults to the global store)
            poll_interval_s: Delay between polls (defaults to settings)
            settle_s: Wait for a late log write after completion (defaults to settings)
        """
        self.store = store or get_artifact_store()
        settings = get_settings()
        if poll_interval_s is None:
            poll_interval_s = settings.tail_poll_interval_s
        if settle_s is None:
            settle_s = settings.tail_settle_s
        self.poll_interval_s = poll_interval_s
        self.settle_s = settle_s

    async def read_since(self, sandbox_id: str, cmd_id: str, cursor: int = 0) -> TailChunk:
        """
        Poll once for log content past a cursor.

        Args:
            sandbox_id: Sandbox ID
            cmd_id: Command ID
            cursor: Characters already consumed

        Returns:
            TailChunk with the new content, the advanced cursor, and whether
            the command has finished
        """
        meta = await self.store.read_meta(sandbox_id, cmd_id)
        logs = await self.store.read_logs(sandbox_id, cmd_id)

        data = ""
        if logs is not None and len(logs) > cursor:
            data = logs[cursor:]
            cursor = len(logs)

        complete = meta is not None and meta.is_terminal
        return TailChunk(data=data, cursor=cursor, complete=complete)

    async def follow(self, sandbox_id: str, cmd_id: str) -> AsyncIterator[str]:
        """
        Yield new log content until the command finishes.

        Content observed in the same poll that sees the exit code is yielded
        before stopping. There is no iteration or time limit: a command that
        is never finalized is polled until the consumer stops iterating.

        Args:
            sandbox_id: Sandbox ID
            cmd_id: Command ID

        Yields:
            Log content appended since the previous poll
        """
        cursor = 0
        polls = 0
        while True:
            chunk = await self.read_since(sandbox_id, cmd_id, cursor)
            polls += 1
            cursor = chunk.cursor

            if chunk.data:
                yield chunk.data

            if chunk.complete:
                if cursor == 0:
                    late = await self._settle(sandbox_id, cmd_id)
                    cursor = len(late)
                    if late:
                        yield late
                break

            await asyncio.sleep(self.poll_interval_s)

        logger.debug(
            "Log tail finished",
            extra={"sandbox_id": sandbox_id, "cmd_id": cmd_id, "polls": polls, "cursor": cursor},
        )

    async def _settle(self, sandbox_id: str, cmd_id: str) -> str:
        """Re-read the log of a finished command until it has content or the window closes."""
        deadline = asyncio.get_running_loop().time() + self.settle_s
        while asyncio.get_running_loop().time() < deadline:
            await asyncio.sleep(self.poll_interval_s)
            logs = await self.store.read_logs(sandbox_id, cmd_id)
            if logs:
                return logs
        return ""


_log_tail_reader: Optional[LogTailReader] = None


def get_log_tail_reader() -> LogTailReader:
    """Get or create the global log tail reader instance."""
    global _log_tail_reader
    if _log_tail_reader is None:
        _log_tail_reader = LogTailReader()
    return _log_tail_reader
