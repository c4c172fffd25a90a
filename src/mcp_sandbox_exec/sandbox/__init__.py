"""Sandbox transports."""

from .base import RemoteFilesystem, SandboxHandle, SandboxTransport, join_command, shell_escape
from .e2b_client import E2BSandboxHandle, E2BTransport, get_sandbox_transport

__all__ = [
    "E2BSandboxHandle",
    "E2BTransport",
    "RemoteFilesystem",
    "SandboxHandle",
    "SandboxTransport",
    "get_sandbox_transport",
    "join_command",
    "shell_escape",
]
