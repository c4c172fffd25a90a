"""Custom exceptions for MCP Sandbox Exec."""

from typing import Any


class SandboxExecError(Exception):
    """Base exception for MCP Sandbox Exec errors."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """
        Initialize SandboxExecError.

        Args:
            message: Error message
            original_error: Underlying exception raised by the provider
        """
        self.original_error = original_error
        super().__init__(message)

    @property
    def payload(self) -> dict[str, Any] | None:
        """Structured details describing the failure, if any."""
        return None


class SandboxConfigError(SandboxExecError):
    """Exception raised when sandbox configuration is missing or invalid."""

    pass


class SandboxConnectionError(SandboxExecError):
    """Exception raised when a sandbox cannot be reached."""

    def __init__(self, sandbox_id: str, original_error: Exception | None = None) -> None:
        """
        Initialize SandboxConnectionError.

        Args:
            sandbox_id: Sandbox that could not be reached
            original_error: Original exception from the provider
        """
        self.sandbox_id = sandbox_id
        detail = f": {original_error}" if original_error else ""
        super().__init__(f"Cannot connect to sandbox {sandbox_id}{detail}", original_error)

    @property
    def payload(self) -> dict[str, Any] | None:
        return {"sandboxId": self.sandbox_id}


class SandboxNotFoundError(SandboxConnectionError):
    """Exception raised when a sandbox id is unknown to the provider."""

    pass


class ExecutionError(SandboxExecError):
    """
    Exception raised when the run or start primitive itself fails.

    A command exiting with a non-zero code is a normal result, not an
    ExecutionError.
    """

    def __init__(
        self,
        sandbox_id: str,
        command: str,
        original_error: Exception | None = None,
    ) -> None:
        """
        Initialize ExecutionError.

        Args:
            sandbox_id: Sandbox the command was dispatched to
            command: Command line that failed to run
            original_error: Original exception from the provider
        """
        self.sandbox_id = sandbox_id
        self.command = command
        detail = f": {original_error}" if original_error else ""
        super().__init__(
            f"Failed to run command in sandbox {sandbox_id}{detail}", original_error
        )

    @property
    def payload(self) -> dict[str, Any] | None:
        return {"sandboxId": self.sandbox_id, "command": self.command}


class StorageError(SandboxExecError):
    """Exception raised when a remote filesystem operation fails (not-found excluded)."""

    def __init__(
        self,
        operation: str,
        path: str,
        original_error: Exception | None = None,
    ) -> None:
        """
        Initialize StorageError.

        Args:
            operation: Operation that failed (read, write, mkdir)
            path: Remote path involved
            original_error: Original exception from the provider
        """
        self.operation = operation
        self.path = path
        detail = f": {original_error}" if original_error else ""
        super().__init__(f"Storage {operation} failed for '{path}'{detail}", original_error)

    @property
    def payload(self) -> dict[str, Any] | None:
        return {"operation": self.operation, "path": self.path}


class MetadataParseError(SandboxExecError):
    """Exception raised when stored command metadata is not valid."""

    def __init__(self, path: str, original_error: Exception | None = None) -> None:
        """
        Initialize MetadataParseError.

        Args:
            path: Metadata file that failed to parse
            original_error: Original parse exception
        """
        self.path = path
        super().__init__(f"Invalid command metadata at '{path}'", original_error)


class PortNotReadyError(SandboxExecError):
    """Exception raised when nothing starts listening on a sandbox port in time."""

    def __init__(self, sandbox_id: str, port: int, timeout_ms: int) -> None:
        self.sandbox_id = sandbox_id
        self.port = port
        self.timeout_ms = timeout_ms
        super().__init__(
            f"No service is listening on port {port} in sandbox {sandbox_id} after {timeout_ms}ms"
        )

    @property
    def payload(self) -> dict[str, Any] | None:
        return {"sandboxId": self.sandbox_id, "port": self.port, "timeoutMs": self.timeout_ms}
