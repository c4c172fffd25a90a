"""Command normalization and sudo wrapping."""

from typing import Dict, List, NamedTuple, Sequence, Tuple


class Invocation(NamedTuple):
    """A command and its argument vector."""

    command: str
    args: List[str]


# Commands rewritten before execution: command -> prefix it expands to.
# ``pnpm install`` becomes ``corepack pnpm install``.
COMMAND_REWRITES: Dict[str, Tuple[str, ...]] = {
    "pnpm": ("corepack", "pnpm"),
}


def normalize_command(command: str, args: Sequence[str]) -> Invocation:
    """
    Apply COMMAND_REWRITES to a command.

    Args:
        command: Base command as given by the caller
        args: Command arguments

    Returns:
        The rewritten invocation, or the original one if no rewrite applies
    """
    rewrite = COMMAND_REWRITES.get(command.strip())
    if rewrite is None:
        return Invocation(command, list(args))

    return Invocation(rewrite[0], [*rewrite[1:], *args])


def build_invocation(command: str, args: Sequence[str], sudo: bool = False) -> Invocation:
    """
    Build the invocation actually sent to the sandbox.

    Args:
        command: Base command
        args: Command arguments
        sudo: Run the command through sudo

    Returns:
        Invocation for the transport
    """
    if sudo:
        return Invocation("sudo", [command, *args])
    return Invocation(command, list(args))
