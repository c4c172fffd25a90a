"""Unit tests for LogTailReader."""

import asyncio

import pytest

from mcp_sandbox_exec.managers.log_tail import LogTailReader

LOGS = "/tmp/test-artifacts/cmds/cmd_abc/logs.ndjson"


@pytest.fixture
def reader(store):
    return LogTailReader(store=store, poll_interval_s=0, settle_s=0)


def test_poll_interval_from_settings(store, monkeypatch):
    """Test the poll interval defaults to the configured milliseconds."""
    monkeypatch.setenv("MCP_TAIL_POLL_INTERVAL_MS", "250")

    reader = LogTailReader(store=store)

    assert reader.poll_interval_s == 0.25


@pytest.mark.asyncio
async def test_read_since_unknown_command(reader):
    """Test a command that never started yields nothing and is not complete."""
    chunk = await reader.read_since("sb1", "cmd_abc")

    assert chunk.data == ""
    assert chunk.cursor == 0
    assert chunk.complete is False


@pytest.mark.asyncio
async def test_read_since_advances_cursor(reader, store, sandbox):
    """Test only content past the cursor is returned."""
    await store.initialize("sb1", "cmd_abc")
    sandbox.files[LOGS] = b"line one\n"

    first = await reader.read_since("sb1", "cmd_abc")
    assert first.data == "line one\n"
    assert first.cursor == 9

    sandbox.files[LOGS] = b"line one\nline two\n"
    second = await reader.read_since("sb1", "cmd_abc", first.cursor)
    assert second.data == "line two\n"
    assert second.cursor == 18

    third = await reader.read_since("sb1", "cmd_abc", second.cursor)
    assert third.data == ""
    assert third.cursor == 18
    assert third.complete is False


@pytest.mark.asyncio
async def test_read_since_cursor_never_moves_backwards(reader, store, sandbox):
    """Test a shrunken log does not rewind the cursor."""
    await store.initialize("sb1", "cmd_abc")
    sandbox.files[LOGS] = b"short\n"

    chunk = await reader.read_since("sb1", "cmd_abc", 100)

    assert chunk.data == ""
    assert chunk.cursor == 100


@pytest.mark.asyncio
async def test_read_since_complete_after_finalize(reader, store):
    """Test completion is reported once the exit code is set."""
    await store.initialize("sb1", "cmd_abc")
    await store.finalize("sb1", "cmd_abc", 0, "done\n", "")

    chunk = await reader.read_since("sb1", "cmd_abc")

    assert chunk.complete is True
    assert '"data":"done\\n"' in chunk.data


@pytest.mark.asyncio
async def test_follow_emits_content_once_and_stops(reader, store, sandbox):
    """Test follow yields each suffix once and stops after completion."""
    await store.initialize("sb1", "cmd_abc")

    polls = 0
    original_read = reader.read_since

    async def read_and_finish(sandbox_id, cmd_id, cursor=0):
        nonlocal polls
        polls += 1
        if polls == 2:
            await store.finalize(sandbox_id, cmd_id, 0, "out\n", "err\n")
        return await original_read(sandbox_id, cmd_id, cursor)

    reader.read_since = read_and_finish

    chunks = [data async for data in reader.follow("sb1", "cmd_abc")]

    assert polls == 2
    assert len(chunks) == 1
    assert chunks[0] == await store.read_logs("sb1", "cmd_abc")


@pytest.mark.asyncio
async def test_follow_includes_trailing_content_on_completion(reader, store, sandbox):
    """Test bytes written together with the exit code are still delivered."""
    await store.initialize("sb1", "cmd_abc")
    sandbox.files[LOGS] = b"partial\n"

    polls = 0
    original_read = reader.read_since

    async def read_and_finish(sandbox_id, cmd_id, cursor=0):
        nonlocal polls
        polls += 1
        if polls == 2:
            sandbox.files[LOGS] = b"partial\nrest\n"
            record = await store.read_meta(sandbox_id, cmd_id)
            sandbox.files[store.meta_path(cmd_id)] = (
                record.model_copy(update={"exit_code": 1}).to_json().encode()
            )
        return await original_read(sandbox_id, cmd_id, cursor)

    reader.read_since = read_and_finish

    chunks = [data async for data in reader.follow("sb1", "cmd_abc")]

    assert chunks == ["partial\n", "rest\n"]


@pytest.mark.asyncio
async def test_follow_already_finished(reader, store):
    """Test a finished command is delivered in a single poll."""
    await store.finalize("sb1", "cmd_abc", 0, "", "")

    chunks = [data async for data in reader.follow("sb1", "cmd_abc")]

    assert chunks == []


@pytest.mark.asyncio
async def test_follow_waits_for_log_written_after_metadata(store, sandbox):
    """Test output is delivered when the exit code lands before the log write."""
    reader = LogTailReader(store=store, poll_interval_s=0.01, settle_s=1.0)
    await store.initialize("sb1", "cmd_abc")
    record = await store.read_meta("sb1", "cmd_abc")
    sandbox.files[store.meta_path("cmd_abc")] = (
        record.model_copy(update={"exit_code": 0}).to_json().encode()
    )

    async def late_log_write():
        await asyncio.sleep(0.05)
        sandbox.files[LOGS] = b'{"stream":"stdout","data":"late\\n"}\n'

    writer = asyncio.create_task(late_log_write())
    chunks = [data async for data in reader.follow("sb1", "cmd_abc")]
    await writer

    assert chunks == ['{"stream":"stdout","data":"late\\n"}\n']


@pytest.mark.asyncio
async def test_follow_silent_command_stops_after_settle_window(store, sandbox):
    """Test a finished command without output still ends the tail."""
    reader = LogTailReader(store=store, poll_interval_s=0.01, settle_s=0.05)
    await store.finalize("sb1", "cmd_abc", 0, "", "")

    chunks = [data async for data in reader.follow("sb1", "cmd_abc")]

    assert chunks == []


def test_settle_window_from_settings(store, monkeypatch):
    monkeypatch.setenv("MCP_TAIL_SETTLE_MS", "2500")

    assert LogTailReader(store=store).settle_s == 2.5
