"""Test configuration and fixtures."""

from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

import pytest
from e2b import CommandExitException

from mcp_sandbox_exec.config import get_settings
from mcp_sandbox_exec.managers.artifact_store import CommandArtifactStore
from mcp_sandbox_exec.models.commands import CommandOutput
from mcp_sandbox_exec.sandbox.base import SandboxHandle, SandboxTransport
from mcp_sandbox_exec.utils.exceptions import (
    ExecutionError,
    SandboxConnectionError,
    SandboxNotFoundError,
    StorageError,
)

TEST_ROOT = "/tmp/test-artifacts"


class InMemorySandbox(SandboxHandle):
    """Sandbox keeping its filesystem in a dict and returning canned command output."""

    def __init__(self, sandbox_id: str) -> None:
        self.sandbox_id = sandbox_id
        self.files: Dict[str, bytes] = {}
        self.dirs: Set[str] = set()
        self.runs: List[Tuple[str, List[str]]] = []
        self.starts: List[Tuple[str, List[str]]] = []
        self.waited: List[int] = []
        self.writes: List[str] = []
        self.port_waits: List[Tuple[int, int]] = []
        self.open_ports: Set[int] = set()

        self.output = CommandOutput(stdout="", stderr="", exit_code=0)
        self.next_pid = 4242
        self.run_error: Optional[Exception] = None
        self.start_error: Optional[Exception] = None
        self.fail_writes = False
        self.fail_reads = False

    async def write_file(self, path: str, content: Union[str, bytes]) -> None:
        if self.fail_writes:
            raise StorageError("write", path, OSError("disk full"))
        self.writes.append(path)
        self.files[path] = content.encode("utf-8") if isinstance(content, str) else content

    async def read_file(self, path: str) -> Optional[bytes]:
        if self.fail_reads:
            raise StorageError("read", path, OSError("i/o error"))
        return self.files.get(path)

    async def make_dir(self, path: str) -> None:
        self.dirs.add(path)

    async def run(self, command: str, args: Sequence[str]) -> CommandOutput:
        self.runs.append((command, list(args)))
        if self.run_error is not None:
            raise self.run_error
        return self.output

    async def start(self, command: str, args: Sequence[str]) -> int:
        self.starts.append((command, list(args)))
        if self.start_error is not None:
            raise self.start_error
        return self.next_pid

    async def wait(self, pid: int) -> CommandOutput:
        self.waited.append(pid)
        return self.output

    def get_host(self, port: int) -> str:
        return f"{port}-{self.sandbox_id}.e2b.test"

    async def wait_for_port(self, port: int, timeout_ms: int, interval_ms: int = 250) -> bool:
        self.port_waits.append((port, timeout_ms))
        if self.run_error is not None:
            raise self.run_error
        return port in self.open_ports


class InMemoryTransport(SandboxTransport):
    """Transport serving InMemorySandbox instances by ID."""

    def __init__(self) -> None:
        self.sandboxes: Dict[str, InMemorySandbox] = {}
        self.connect_error: Optional[Exception] = None
        self.connects = 0
        self.created_timeouts: List[Optional[int]] = []

    def add(self, sandbox_id: str) -> InMemorySandbox:
        sandbox = InMemorySandbox(sandbox_id)
        self.sandboxes[sandbox_id] = sandbox
        return sandbox

    async def connect(self, sandbox_id: str) -> InMemorySandbox:
        self.connects += 1
        if self.connect_error is not None:
            raise self.connect_error
        if sandbox_id not in self.sandboxes:
            raise SandboxNotFoundError(sandbox_id)
        return self.sandboxes[sandbox_id]

    async def create(self, timeout_s: Optional[int] = None) -> InMemorySandbox:
        self.created_timeouts.append(timeout_s)
        return self.add(f"sb_{len(self.sandboxes) + 1}")


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Make every test read settings from a clean environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def transport() -> InMemoryTransport:
    """Transport with a single sandbox "sb1"."""
    transport = InMemoryTransport()
    transport.add("sb1")
    return transport


@pytest.fixture
def sandbox(transport) -> InMemorySandbox:
    """The "sb1" sandbox."""
    return transport.sandboxes["sb1"]


@pytest.fixture
def store(transport) -> CommandArtifactStore:
    """Artifact store backed by the in-memory transport."""
    return CommandArtifactStore(transport=transport, root=TEST_ROOT)


@pytest.fixture
def execution_error() -> ExecutionError:
    return ExecutionError("sb1", "false", RuntimeError("process spawn failed"))


@pytest.fixture
def connection_error() -> SandboxConnectionError:
    return SandboxConnectionError("sb1", RuntimeError("timed out"))


@pytest.fixture
def exit_exception():
    """Factory for the SDK exception raised on a non-zero exit."""

    def make(exit_code: int, stdout: str = "", stderr: str = "") -> CommandExitException:
        # Built attribute by attribute; the SDK constructor signature varies by release
        error = CommandExitException.__new__(CommandExitException)
        error.stdout = stdout
        error.stderr = stderr
        error.exit_code = exit_code
        error.error = None
        return error

    return make
