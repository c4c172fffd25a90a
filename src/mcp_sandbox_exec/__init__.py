"""MCP Sandbox Exec - command execution tracking for remote sandboxes."""

__version__ = "0.1.0"
