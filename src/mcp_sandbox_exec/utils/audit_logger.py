"""Structured audit logging for command lifecycle operations."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from mcp_sandbox_exec.utils.logging import get_logger


class AuditEventType(str, Enum):
    """Types of audit events."""

    # Sandbox events
    SANDBOX_CREATE = "sandbox_create"

    # Command events
    COMMAND_START = "command_start"
    COMMAND_BACKGROUND = "command_background"
    COMMAND_COMPLETE = "command_complete"
    COMMAND_ERROR = "command_error"

    # Worker events
    WORKER_RUN = "worker_run"

    # Security events
    SECURITY_SUDO = "security_sudo"


class AuditLogger:
    """Structured audit logger for tracking command operations."""

    SENSITIVE_KEYS = frozenset(
        {"password", "token", "secret", "key", "auth", "credentials", "private"}
    )

    def __init__(self):
        """Initialize the audit logger."""
        self._logger = get_logger("audit")
        # Audit events are always emitted
        self._logger.setLevel(logging.INFO)

    def log_event(
        self,
        event_type: AuditEventType,
        sandbox_id: Optional[str] = None,
        cmd_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Log an audit event.

        Args:
            event_type: Type of event being logged
            sandbox_id: Sandbox ID if relevant
            cmd_id: Command ID if relevant
            details: Additional event-specific details
        """
        sanitized_details = self._sanitize_details(details or {})

        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
        }

        if sandbox_id:
            event["sandbox_id"] = sandbox_id
        if cmd_id:
            event["cmd_id"] = cmd_id
        if sanitized_details:
            event["details"] = sanitized_details

        self._logger.info("audit_event", extra=event)

    def _sanitize_details(self, details: dict[str, Any]) -> dict[str, Any]:
        """Redact values whose key looks sensitive, recursing into dicts and lists."""
        sanitized = {}
        for key, value in details.items():
            if any(word in key.lower() for word in self.SENSITIVE_KEYS):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_details(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    self._sanitize_details(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                sanitized[key] = value

        return sanitized


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """
    Get the global audit logger instance.

    Returns:
        AuditLogger instance
    """
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
