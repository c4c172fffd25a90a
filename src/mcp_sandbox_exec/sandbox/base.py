"""Sandbox transport abstractions.

The command store only needs the filesystem surface of a sandbox; the
command runner additionally needs the run/start/wait primitives.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Union

from mcp_sandbox_exec.models.commands import CommandOutput


class RemoteFilesystem(ABC):
    """Minimal filesystem capability of a sandbox's persistent storage."""

    @abstractmethod
    async def write_file(self, path: str, content: Union[str, bytes]) -> None:
        """Write a file, replacing any existing content.

        Raises:
            StorageError: If the write fails
        """

    @abstractmethod
    async def read_file(self, path: str) -> Optional[bytes]:
        """Read a file.

        Returns:
            File content, or None if the path does not exist

        Raises:
            StorageError: If the read fails for any reason other than not-found
        """

    @abstractmethod
    async def make_dir(self, path: str) -> None:
        """Create a directory and its parents. Existing directories are fine.

        Raises:
            StorageError: If the directory cannot be created
        """


class SandboxHandle(RemoteFilesystem):
    """A connected sandbox."""

    sandbox_id: str

    @abstractmethod
    async def run(self, command: str, args: Sequence[str]) -> CommandOutput:
        """Run a command to completion and capture its output.

        Argument escaping is done here, not by callers.

        Raises:
            ExecutionError: If the command could not be run
        """

    @abstractmethod
    async def start(self, command: str, args: Sequence[str]) -> int:
        """Start a command in the background.

        Returns:
            Process id of the started command

        Raises:
            ExecutionError: If the command could not be started
        """

    @abstractmethod
    async def wait(self, pid: int) -> CommandOutput:
        """Wait for a background command to finish.

        Raises:
            ExecutionError: If the process cannot be awaited
        """

    @abstractmethod
    def get_host(self, port: int) -> str:
        """Public host name under which the sandbox exposes a port."""

    @abstractmethod
    async def wait_for_port(self, port: int, timeout_ms: int, interval_ms: int = 250) -> bool:
        """Wait until something listens on a port inside the sandbox.

        Returns:
            True once the port is listening, False if the timeout passed first

        Raises:
            ExecutionError: If the check could not be run
        """


class SandboxTransport(ABC):
    """Creates and connects to sandboxes."""

    @abstractmethod
    async def connect(self, sandbox_id: str) -> SandboxHandle:
        """Connect to an existing sandbox.

        Raises:
            SandboxConnectionError: If the sandbox cannot be reached
        """

    @abstractmethod
    async def create(self, timeout_s: Optional[int] = None) -> SandboxHandle:
        """Provision a new sandbox.

        Args:
            timeout_s: Sandbox lifetime in seconds, or None for the configured default

        Raises:
            SandboxConnectionError: If the sandbox cannot be created
        """


def shell_escape(value: str) -> str:
    """Quote a single shell argument."""
    return "'" + value.replace("'", "'\"'\"'") + "'"


def join_command(command: str, args: Sequence[str]) -> str:
    """Render a command and its escaped arguments as one shell line."""
    parts: List[str] = [command]
    parts.extend(shell_escape(arg) for arg in args)
    return " ".join(parts)
