"""Tests for daemon/mock.py — MockDaemon."""
from __future__ import annotations

import asyncio

import pytest

from funcs_builder.core.exceptions import DaemonError
from funcs_builder.core.types import AuthDescriptor, DaemonEvent
from funcs_builder.daemon.base import DaemonClient, DaemonProtocol
from funcs_builder.daemon.mock import MockDaemon


async def _drain(daemon: MockDaemon, stream: object) -> list[DaemonEvent]:
    return [event async for event in daemon.follow_progress(stream)]


def test_mock_daemon_satisfies_interfaces() -> None:
    daemon = MockDaemon()
    assert isinstance(daemon, DaemonClient)
    assert isinstance(daemon, DaemonProtocol)


async def test_build_records_call_and_registers_image(mock_daemon: MockDaemon) -> None:
    stream = await mock_daemon.build_image("/src", ["a", "b"], "fn:v1")
    assert mock_daemon.calls == [
        ("build_image", {"context": "/src", "files": ["a", "b"], "tag": "fn:v1"})
    ]
    events = await _drain(mock_daemon, stream)
    assert [e.describe() for e in events] == ["Successfully built mock"]
    handle = await mock_daemon.get_image("fn:v1")
    assert handle.name == "fn:v1"
    assert handle.id is not None


async def test_get_unknown_image_raises(mock_daemon: MockDaemon) -> None:
    with pytest.raises(DaemonError, match="No such image"):
        await mock_daemon.get_image("ghost:1")


async def test_scripted_events_accept_dicts(mock_daemon: MockDaemon) -> None:
    mock_daemon.script_push({"status": "Pushed", "id": "x"}, DaemonEvent(status="done"))
    handle_stream = await mock_daemon.build_image("/src", [], "fn:v1")
    await _drain(mock_daemon, handle_stream)
    handle = await mock_daemon.get_image("fn:v1")
    stream = await mock_daemon.push_image(handle, "latest", AuthDescriptor())
    events = await _drain(mock_daemon, stream)
    assert [e.describe() for e in events] == ["x: Pushed", "done"]


async def test_fail_makes_call_raise(mock_daemon: MockDaemon) -> None:
    mock_daemon.fail("build_image", "daemon down")
    with pytest.raises(DaemonError, match="daemon down"):
        await mock_daemon.build_image("/src", [], "fn:v1")
    assert mock_daemon.call_count("build_image") == 1


async def test_break_stream_raises_after_events(mock_daemon: MockDaemon) -> None:
    mock_daemon.break_stream("build", "reset by peer")
    stream = await mock_daemon.build_image("/src", [], "fn:v1")
    seen: list[DaemonEvent] = []
    with pytest.raises(DaemonError, match="reset by peer"):
        async for event in mock_daemon.follow_progress(stream):
            seen.append(event)
    assert len(seen) == 1


async def test_hang_blocks_forever(mock_daemon: MockDaemon) -> None:
    mock_daemon.hang("build")
    stream = await mock_daemon.build_image("/src", [], "fn:v1")
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(_drain(mock_daemon, stream), timeout=0.05)


async def test_assert_helpers_and_reset(mock_daemon: MockDaemon) -> None:
    await mock_daemon.build_image("/src", [], "fn:v1")
    mock_daemon.assert_called("build_image")
    mock_daemon.assert_not_called("push_image")
    with pytest.raises(AssertionError):
        mock_daemon.assert_called("push_image")
    with pytest.raises(KeyError):
        mock_daemon.last_params("push_image")
    mock_daemon.reset()
    assert mock_daemon.calls == []
    with pytest.raises(DaemonError):
        await mock_daemon.get_image("fn:v1")


async def test_async_context_manager_closes() -> None:
    async with MockDaemon() as daemon:
        assert not daemon.closed
    assert daemon.closed
