"""Command identifier generation."""

import random
import time
from uuid import uuid4

from mcp_sandbox_exec.utils.logging import get_logger

logger = get_logger(__name__)

COMMAND_ID_PREFIX = "cmd_"


def new_command_id() -> str:
    """
    Generate a new command ID.

    IDs are ``cmd_`` followed by lowercase hex digits only, so they can be
    embedded directly in sandbox paths.

    When the OS cannot provide cryptographically strong randomness, the ID is
    built from the millisecond timestamp plus a pseudo-random suffix. Those
    IDs are far weaker against collisions between concurrent callers.

    Returns:
        Command ID
    """
    try:
        raw = uuid4().hex
    except (NotImplementedError, OSError):
        logger.warning(
            "Strong random source unavailable, using timestamp-based command ID",
            extra={"collision_resistant": False},
        )
        raw = f"{int(time.time() * 1000):x}{random.getrandbits(64):x}"

    return f"{COMMAND_ID_PREFIX}{raw}"
