"""Unit tests for command normalization and sudo wrapping."""

from unittest.mock import patch

from mcp_sandbox_exec.managers.invocation import build_invocation, normalize_command
from mcp_sandbox_exec.utils.ids import COMMAND_ID_PREFIX, new_command_id


def test_pnpm_goes_through_corepack():
    assert normalize_command("pnpm", ["install"]) == ("corepack", ["pnpm", "install"])


def test_pnpm_with_whitespace():
    """Test surrounding whitespace does not defeat the rewrite."""
    assert normalize_command(" pnpm ", []) == ("corepack", ["pnpm"])


def test_other_commands_untouched():
    assert normalize_command("npm", ["ci"]) == ("npm", ["ci"])
    assert normalize_command("pnpmx", []) == ("pnpmx", [])


def test_build_invocation_plain():
    assert build_invocation("ls", ["-la"]) == ("ls", ["-la"])


def test_build_invocation_sudo():
    """Test sudo becomes the command with the original command as first argument."""
    invocation = build_invocation("rm", ["-rf", "x"], sudo=True)

    assert invocation.command == "sudo"
    assert invocation.args == ["rm", "-rf", "x"]


def test_new_command_id_format():
    """Test IDs are the prefix plus lowercase hex."""
    cmd_id = new_command_id()

    assert cmd_id.startswith(COMMAND_ID_PREFIX)
    suffix = cmd_id[len(COMMAND_ID_PREFIX):]
    assert len(suffix) == 32
    assert all(c in "0123456789abcdef" for c in suffix)


def test_new_command_id_unique():
    assert len({new_command_id() for _ in range(1000)}) == 1000


def test_new_command_id_fallback():
    """Test a timestamp-based ID is produced when strong randomness is unavailable."""
    with patch("mcp_sandbox_exec.utils.ids.uuid4", side_effect=NotImplementedError):
        cmd_id = new_command_id()

    assert cmd_id.startswith(COMMAND_ID_PREFIX)
    assert all(c in "0123456789abcdef" for c in cmd_id[len(COMMAND_ID_PREFIX):])
