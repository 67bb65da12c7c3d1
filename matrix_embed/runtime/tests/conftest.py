"""Shared pytest fixtures for matrix_embed.runtime tests."""

from __future__ import annotations

import io
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest
from PIL import Image

from matrix_embed.runtime.media.process import ProcessResult, ProcessRunner


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    env_path = tmp_path / ".env"
    monkeypatch.setenv("DOTENV_PATH", str(env_path))
    return env_path


@pytest.fixture(autouse=True)
def _reset_singletons(_isolate_env: Path):
    from matrix_embed.runtime.util.singletons import reset_all_singletons

    reset_all_singletons()
    yield
    reset_all_singletons()


@pytest.fixture()
def env_path(_isolate_env: Path) -> Path:
    return _isolate_env


def make_jpeg(width: int = 60, height: int = 40, color: tuple[int, int, int] = (200, 40, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG")
    return buf.getvalue()


# Leading bytes filetype recognises as an MP4 container.
MP4_HEAD = b"\x00\x00\x00\x18ftypisom\x00\x00\x02\x00isomiso2"


class FakeToolRunner(ProcessRunner):
    """Stands in for ffprobe/ffmpeg, answering by which stage is being run.

    ``responses`` maps a stage name to either the output to return or an
    exception to raise.  Stages are ``probe``, ``probe_thumbnail``,
    ``thumbnail``, ``stream_copy`` and ``reencode``.  Remux stages write
    their output to the destination path like the real tool would.
    """

    def __init__(self, **responses: Any) -> None:
        self.thumbnail_bytes = make_jpeg()
        self.responses: dict[str, Any] = {
            "probe": "640x480",
            "probe_thumbnail": "600x450",
            "thumbnail": self.thumbnail_bytes,
            "stream_copy": MP4_HEAD + b"stream-copied",
            "reencode": MP4_HEAD + b"reencoded",
        }
        self.responses.update(responses)
        if isinstance(self.responses["thumbnail"], bytes):
            self.thumbnail_bytes = self.responses["thumbnail"]
        self.calls: list[str] = []
        self.invocations: list[tuple[str, list[str]]] = []
        self.timeouts: list[tuple[float, float]] = []

    def _stage(self, tool: str, args: Sequence[str], input_bytes: bytes | None) -> str:
        if "ffprobe" in tool:
            return "probe_thumbnail" if input_bytes == self.thumbnail_bytes else "probe"
        if "-vframes" in args:
            return "thumbnail"
        if "libx264" in args:
            return "reencode"
        return "stream_copy"

    async def run(
        self,
        tool: str,
        args: Sequence[str],
        *,
        input_bytes: bytes | None = None,
        write_timeout: float = 10.0,
        read_timeout: float = 10.0,
        capture_stdout: bool = True,
        check: bool = True,
    ) -> ProcessResult:
        stage = self._stage(tool, args, input_bytes)
        self.calls.append(stage)
        self.invocations.append((tool, list(args)))
        self.timeouts.append((write_timeout, read_timeout))
        outcome = self.responses[stage]
        if isinstance(outcome, BaseException):
            raise outcome
        if stage in ("stream_copy", "reencode"):
            Path(args[-1]).write_bytes(outcome)
            return ProcessResult(success=True, returncode=0)
        stdout = outcome.encode() if isinstance(outcome, str) else outcome
        return ProcessResult(success=True, stdout=stdout, returncode=0)


@pytest.fixture()
def fake_runner() -> FakeToolRunner:
    return FakeToolRunner()


@pytest.fixture()
def runner_factory() -> type[FakeToolRunner]:
    return FakeToolRunner


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return make_jpeg()
