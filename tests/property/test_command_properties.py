"""Property-based tests for command identifiers, escaping and logs."""

import shlex

import pytest
from hypothesis import given
from hypothesis import strategies as st

from mcp_sandbox_exec.managers.artifact_store import render_log
from mcp_sandbox_exec.managers.invocation import COMMAND_REWRITES, normalize_command
from mcp_sandbox_exec.models.commands import LogEntry
from mcp_sandbox_exec.sandbox.base import join_command, shell_escape
from mcp_sandbox_exec.utils.ids import COMMAND_ID_PREFIX, new_command_id

# Characters a POSIX shell cannot carry in an argument
shell_text = st.text(alphabet=st.characters(blacklist_characters="\x00"))


@pytest.mark.property
@given(st.integers(min_value=1, max_value=50))
def test_command_ids_are_path_safe(count: int):
    """Property: IDs are the prefix plus lowercase hex and never repeat."""
    ids = [new_command_id() for _ in range(count)]

    assert len(set(ids)) == count
    for cmd_id in ids:
        suffix = cmd_id[len(COMMAND_ID_PREFIX):]
        assert cmd_id.startswith(COMMAND_ID_PREFIX)
        assert suffix and set(suffix) <= set("0123456789abcdef")


@pytest.mark.property
@given(shell_text)
def test_shell_escape_round_trips(value: str):
    """Property: a shell splits an escaped argument back into exactly itself."""
    assert shlex.split(shell_escape(value)) == [value]


@pytest.mark.property
@given(st.lists(shell_text, max_size=8))
def test_join_command_preserves_argument_boundaries(args: list[str]):
    """Property: arguments keep their boundaries whatever they contain."""
    assert shlex.split(join_command("cmd", args)) == ["cmd", *args]


@pytest.mark.property
@given(
    st.text(min_size=1).filter(lambda c: c.strip() not in COMMAND_REWRITES),
    st.lists(st.text()),
)
def test_normalize_passes_other_commands_through(command: str, args: list[str]):
    """Property: commands without a rewrite are returned unchanged."""
    assert normalize_command(command, args) == (command, args)


@pytest.mark.property
@given(st.lists(st.text()))
def test_normalize_pnpm_keeps_arguments(args: list[str]):
    """Property: the pnpm rewrite only prepends."""
    invocation = normalize_command("pnpm", args)

    assert invocation.command == "corepack"
    assert invocation.args == ["pnpm", *args]


@pytest.mark.property
@given(st.text(), st.text())
def test_log_lines_preserve_stream_content(stdout: str, stderr: str):
    """Property: each non-empty stream becomes exactly one log line."""
    content = render_log(stdout, stderr)
    entries = [LogEntry.model_validate_json(line) for line in content.split("\n") if line]

    expected = [(s, d) for s, d in (("stdout", stdout), ("stderr", stderr)) if d]
    assert [(e.stream, e.data) for e in entries] == expected
