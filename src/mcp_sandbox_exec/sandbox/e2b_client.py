"""E2B sandbox transport for MCP Sandbox Exec."""

import math
from typing import Optional, Sequence, Union

from e2b import AsyncSandbox, CommandExitException, NotFoundException

from mcp_sandbox_exec.config import get_settings
from mcp_sandbox_exec.models.commands import CommandOutput
from mcp_sandbox_exec.sandbox.base import (
    SandboxHandle,
    SandboxTransport,
    join_command,
    shell_escape,
)
from mcp_sandbox_exec.utils import get_logger
from mcp_sandbox_exec.utils.exceptions import (
    ExecutionError,
    SandboxConfigError,
    SandboxConnectionError,
    SandboxNotFoundError,
    StorageError,
)

logger = get_logger(__name__)

# Exits 0 as soon as a socket is bound to the port
WAIT_FOR_PORT_SCRIPT = """set -euo pipefail
for _ in $(seq 1 {tries}); do
  if ss -tuln | grep -qE '[:.]{port}\\b'; then exit 0; fi
  sleep {interval_s}
done
exit 1
"""


def _exit_output(exc: CommandExitException) -> CommandOutput:
    """Non-zero exits are reported by the SDK as exceptions; they are results here."""
    return CommandOutput(stdout=exc.stdout, stderr=exc.stderr, exit_code=exc.exit_code)


class E2BSandboxHandle(SandboxHandle):
    """A connected E2B sandbox."""

    def __init__(self, sandbox: AsyncSandbox, command_timeout_s: float) -> None:
        """
        Initialize E2BSandboxHandle.

        Args:
            sandbox: Connected E2B sandbox
            command_timeout_s: Connection timeout for command runs (0 = unlimited)
        """
        self.sandbox = sandbox
        self.sandbox_id = sandbox.sandbox_id
        self.command_timeout_s = command_timeout_s

    async def run(self, command: str, args: Sequence[str]) -> CommandOutput:
        cmd = join_command(command, args)
        logger.info("Running command", extra={"sandbox_id": self.sandbox_id, "command": command})

        try:
            result = await self.sandbox.commands.run(cmd, timeout=self.command_timeout_s)
            output = CommandOutput(
                stdout=result.stdout, stderr=result.stderr, exit_code=result.exit_code
            )
        except CommandExitException as e:
            output = _exit_output(e)
        except Exception as e:
            logger.error(
                "Command run failed",
                extra={"sandbox_id": self.sandbox_id, "command": command, "error": str(e)},
            )
            raise ExecutionError(self.sandbox_id, cmd, e) from e

        logger.info(
            "Command finished",
            extra={
                "sandbox_id": self.sandbox_id,
                "command": command,
                "exit_code": output.exit_code,
            },
        )
        return output

    async def start(self, command: str, args: Sequence[str]) -> int:
        cmd = join_command(command, args)
        logger.info(
            "Starting background command",
            extra={"sandbox_id": self.sandbox_id, "command": command},
        )

        try:
            handle = await self.sandbox.commands.run(
                cmd, background=True, timeout=self.command_timeout_s
            )
            await handle.disconnect()
        except Exception as e:
            logger.error(
                "Background command start failed",
                extra={"sandbox_id": self.sandbox_id, "command": command, "error": str(e)},
            )
            raise ExecutionError(self.sandbox_id, cmd, e) from e

        logger.info(
            "Background command started",
            extra={"sandbox_id": self.sandbox_id, "command": command, "pid": handle.pid},
        )
        return handle.pid

    async def wait(self, pid: int) -> CommandOutput:
        # Background commands may run for as long as the sandbox lives
        try:
            handle = await self.sandbox.commands.connect(pid, timeout=0)
            result = await handle.wait()
        except CommandExitException as e:
            return _exit_output(e)
        except Exception as e:
            raise ExecutionError(self.sandbox_id, f"pid {pid}", e) from e

        return CommandOutput(stdout=result.stdout, stderr=result.stderr, exit_code=result.exit_code)

    def get_host(self, port: int) -> str:
        return self.sandbox.get_host(port)

    async def wait_for_port(self, port: int, timeout_ms: int, interval_ms: int = 250) -> bool:
        tries = max(1, math.ceil(timeout_ms / interval_ms))
        script = WAIT_FOR_PORT_SCRIPT.format(tries=tries, port=port, interval_s=interval_ms / 1000)
        cmd = f"bash -lc {shell_escape(script)}"
        logger.debug(
            "Waiting for port",
            extra={"sandbox_id": self.sandbox_id, "port": port, "timeout_ms": timeout_ms},
        )

        try:
            await self.sandbox.commands.run(cmd, timeout=0)
        except CommandExitException:
            return False
        except Exception as e:
            raise ExecutionError(self.sandbox_id, f"wait for port {port}", e) from e
        return True

    async def write_file(self, path: str, content: Union[str, bytes]) -> None:
        try:
            await self.sandbox.files.write(path, content)
        except Exception as e:
            raise StorageError("write", path, e) from e

    async def read_file(self, path: str) -> Optional[bytes]:
        try:
            data = await self.sandbox.files.read(path, format="bytes")
        except NotFoundException:
            return None
        except Exception as e:
            raise StorageError("read", path, e) from e
        return bytes(data)

    async def make_dir(self, path: str) -> None:
        try:
            await self.sandbox.files.make_dir(path)
        except Exception as e:
            raise StorageError("mkdir", path, e) from e


class E2BTransport(SandboxTransport):
    """Creates and connects to E2B sandboxes."""

    def __init__(self) -> None:
        """Initialize E2B transport."""
        self.settings = get_settings()

    def _api_key(self) -> str:
        if not self.settings.e2b_api_key:
            raise SandboxConfigError("Missing required env var: MCP_E2B_API_KEY")
        return self.settings.e2b_api_key

    async def connect(self, sandbox_id: str) -> E2BSandboxHandle:
        """
        Connect to an existing sandbox.

        Args:
            sandbox_id: Sandbox ID

        Returns:
            Connected sandbox handle

        Raises:
            SandboxConfigError: If no API key is configured
            SandboxNotFoundError: If the sandbox does not exist
            SandboxConnectionError: If the sandbox cannot be reached
        """
        api_key = self._api_key()
        try:
            sandbox = await AsyncSandbox.connect(sandbox_id, api_key=api_key)
        except NotFoundException as e:
            raise SandboxNotFoundError(sandbox_id, e) from e
        except Exception as e:
            logger.error(
                "Failed to connect to sandbox",
                extra={"sandbox_id": sandbox_id, "error": str(e)},
            )
            raise SandboxConnectionError(sandbox_id, e) from e

        logger.debug("Connected to sandbox", extra={"sandbox_id": sandbox_id})
        return E2BSandboxHandle(sandbox, self.settings.command_timeout_s)

    async def create(self, timeout_s: Optional[int] = None) -> E2BSandboxHandle:
        """
        Create a new sandbox from the configured template.

        Args:
            timeout_s: Sandbox lifetime in seconds (defaults to MCP_SANDBOX_TIMEOUT_S)

        Returns:
            Connected sandbox handle

        Raises:
            SandboxConfigError: If no API key is configured
            SandboxConnectionError: If the sandbox cannot be created
        """
        api_key = self._api_key()
        template = self.settings.normalized_e2b_template
        try:
            sandbox = await AsyncSandbox.create(
                template=template,
                timeout=timeout_s or self.settings.sandbox_timeout_s,
                api_key=api_key,
            )
        except Exception as e:
            logger.error(
                "Failed to create sandbox",
                extra={"template": template, "error": str(e)},
            )
            raise SandboxConnectionError(f"<new:{template}>", e) from e

        logger.info(
            "Sandbox created",
            extra={"sandbox_id": sandbox.sandbox_id, "template": template},
        )
        return E2BSandboxHandle(sandbox, self.settings.command_timeout_s)


# Global instance
_transport: Optional[SandboxTransport] = None


def get_sandbox_transport() -> SandboxTransport:
    """
    Get global sandbox transport instance.

    Returns:
        SandboxTransport instance
    """
    global _transport
    if _transport is None:
        _transport = E2BTransport()
    return _transport
