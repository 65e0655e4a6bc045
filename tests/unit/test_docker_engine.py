"""Tests for daemon/docker_engine.py — DockerDaemon over a mocked APIClient."""
from __future__ import annotations

import asyncio
import tarfile
import threading
from pathlib import Path
from typing import Any, Iterator
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException, ImageNotFound

from funcs_builder.core.config import BuilderConfig
from funcs_builder.core.exceptions import DaemonError
from funcs_builder.core.types import AuthDescriptor, ImageHandle
from funcs_builder.daemon.docker_engine import DockerDaemon


@pytest.fixture
def api() -> MagicMock:
    mock = MagicMock()
    mock.base_url = "http+docker://localhost"
    return mock


# ---------------------------------------------------------------------------
# from_config
# ---------------------------------------------------------------------------


def test_from_config_uses_daemon_url() -> None:
    with patch("funcs_builder.daemon.docker_engine.docker.APIClient") as client_cls:
        daemon = DockerDaemon.from_config(BuilderConfig(daemon_url="tcp://10.0.0.1:2375"))
    client_cls.assert_called_once_with(
        base_url="tcp://10.0.0.1:2375", version="auto", timeout=60.0
    )
    assert isinstance(daemon, DockerDaemon)


async def test_from_config_bounds_build_stream_reads(api: MagicMock) -> None:
    config = BuilderConfig(daemon_timeout=5.0, build_timeout=30.0)
    with patch("funcs_builder.daemon.docker_engine.docker.APIClient") as client_cls:
        client_cls.return_value = api
        daemon = DockerDaemon.from_config(config)
    assert client_cls.call_args.kwargs["timeout"] == 5.0
    api.build.return_value = iter([])
    await daemon.build_image("", [], "fn:v1")
    assert api.build.call_args.kwargs["timeout"] == 30.0


def test_from_config_unreachable_daemon() -> None:
    with patch(
        "funcs_builder.daemon.docker_engine.docker.APIClient",
        side_effect=DockerException("Error while fetching server API version"),
    ):
        with pytest.raises(DaemonError, match="unable to connect"):
            DockerDaemon.from_config()


# ---------------------------------------------------------------------------
# build_image
# ---------------------------------------------------------------------------


async def test_build_image_sends_only_manifest(api: MagicMock, source_tree: Path) -> None:
    (source_tree / "secret.env").write_text("TOKEN=1")
    captured: dict[str, Any] = {}

    def _build(**kwargs: Any) -> Iterator[dict[str, Any]]:
        with tarfile.open(fileobj=kwargs["fileobj"]) as tar:
            captured["names"] = sorted(tar.getnames())
        captured["kwargs"] = kwargs
        return iter([])

    api.build.side_effect = _build
    daemon = DockerDaemon(api)
    await daemon.build_image(str(source_tree), ["Dockerfile", "src/index.js"], "fn:v1")

    assert captured["names"] == ["Dockerfile", "src/index.js"]
    kwargs = captured["kwargs"]
    assert kwargs["custom_context"] is True
    assert kwargs["tag"] == "fn:v1"
    assert kwargs["decode"] is True
    assert kwargs["fileobj"].closed
    assert kwargs["timeout"] is None


async def test_build_image_empty_manifest_on_missing_context(
    api: MagicMock, tmp_path: Path
) -> None:
    api.build.return_value = iter([])
    daemon = DockerDaemon(api)
    await daemon.build_image(str(tmp_path / "missing"), [], "fn:v1")
    api.build.assert_called_once()


async def test_build_image_api_error(api: MagicMock, source_tree: Path) -> None:
    api.build.side_effect = APIError("500 Server Error")
    with pytest.raises(DaemonError, match="build failed"):
        await DockerDaemon(api).build_image(str(source_tree), ["Dockerfile"], "fn:v1")


async def test_build_image_unreadable_manifest_file(api: MagicMock, source_tree: Path) -> None:
    (source_tree / "src" / "index.js").unlink()
    with pytest.raises(DaemonError, match="build failed") as exc_info:
        await DockerDaemon(api).build_image(
            str(source_tree), ["Dockerfile", "src/index.js"], "fn:v1"
        )
    assert isinstance(exc_info.value.__cause__, OSError)
    api.build.assert_not_called()


# ---------------------------------------------------------------------------
# get_image / push_image
# ---------------------------------------------------------------------------


async def test_get_image_returns_handle(api: MagicMock) -> None:
    api.inspect_image.return_value = {"Id": "sha256:abc"}
    handle = await DockerDaemon(api).get_image("registry.example/fn:v1")
    assert handle == ImageHandle(name="registry.example/fn:v1", id="sha256:abc")


async def test_get_image_not_found(api: MagicMock) -> None:
    api.inspect_image.side_effect = ImageNotFound("No such image")
    with pytest.raises(DaemonError):
        await DockerDaemon(api).get_image("fn:v1")


async def test_push_image_tags_then_pushes(api: MagicMock) -> None:
    api.push.return_value = iter([])
    handle = ImageHandle(name="registry.example:5000/fn:v1", id="sha256:abc")
    auth = AuthDescriptor(username="alice", password="pw")

    await DockerDaemon(api).push_image(handle, "latest", auth)

    api.tag.assert_called_once_with("sha256:abc", "registry.example:5000/fn", tag="latest")
    api.push.assert_called_once_with(
        "registry.example:5000/fn",
        tag="latest",
        stream=True,
        decode=True,
        auth_config={
            "username": "alice",
            "password": "pw",
            "serveraddress": "https://index.docker.io/v1",
        },
    )


async def test_push_image_without_id_tags_by_name(api: MagicMock) -> None:
    api.push.return_value = iter([])
    await DockerDaemon(api).push_image(ImageHandle(name="fn:v1"), "latest", AuthDescriptor())
    api.tag.assert_called_once_with("fn:v1", "fn", tag="latest")


# ---------------------------------------------------------------------------
# follow_progress
# ---------------------------------------------------------------------------


async def test_follow_progress_decodes_events(api: MagicMock) -> None:
    stream = iter(
        [
            {"stream": "Step 1/1 : FROM scratch\n"},
            {"aux": {"ID": "sha256:abc"}},
            {"errorDetail": {"message": "boom"}, "error": "boom"},
        ]
    )
    events = [e async for e in DockerDaemon(api).follow_progress(stream)]
    assert [e.describe() for e in events] == ["Step 1/1 : FROM scratch", None, "error: boom"]
    assert events[2].is_error


async def test_follow_progress_wraps_transport_errors(api: MagicMock) -> None:
    def _stream() -> Iterator[dict[str, Any]]:
        yield {"status": "Preparing"}
        raise APIError("connection aborted")

    daemon = DockerDaemon(api)
    seen = []
    with pytest.raises(DaemonError, match="event stream failed"):
        async for event in daemon.follow_progress(_stream()):
            seen.append(event)
    assert len(seen) == 1


async def test_follow_progress_non_dict_chunks(api: MagicMock) -> None:
    chunks = iter([b"raw \xe2\x9c\x93", b"\xff", 7])
    events = [e async for e in DockerDaemon(api).follow_progress(chunks)]
    assert [e.stream for e in events] == ["raw \u2713", "\ufffd", "7"]


async def test_follow_progress_closes_stream_when_consumer_stops(api: MagicMock) -> None:
    closed = threading.Event()

    def _stream() -> Iterator[dict[str, Any]]:
        try:
            yield {"status": "Preparing"}
            yield {"status": "Pushing"}
        finally:
            closed.set()

    events = DockerDaemon(api).follow_progress(_stream())
    await events.__anext__()
    await events.aclose()
    assert closed.is_set()


async def test_follow_progress_closes_stream_once_blocked_read_returns(
    api: MagicMock,
) -> None:
    release = threading.Event()
    closed = threading.Event()

    def _stream() -> Iterator[dict[str, Any]]:
        try:
            yield {"status": "Preparing"}
            release.wait(5)
            yield {"status": "late"}
        finally:
            closed.set()

    daemon = DockerDaemon(api)

    async def _consume() -> None:
        async for _ in daemon.follow_progress(_stream()):
            pass

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(_consume(), timeout=0.1)
    assert not closed.is_set()

    release.set()
    assert await asyncio.to_thread(closed.wait, 5)


async def test_close_closes_api(api: MagicMock) -> None:
    await DockerDaemon(api).close()
    api.close.assert_called_once()


def test_repr(api: MagicMock) -> None:
    assert repr(DockerDaemon(api)) == "DockerDaemon(base_url='http+docker://localhost')"
