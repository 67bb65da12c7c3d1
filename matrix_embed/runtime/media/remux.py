"""Matroska to MP4 container normalization.

MP4 needs its ``moov`` index written after the whole stream has been
scanned (``+faststart`` moves it to the front), which requires seeking
the output.  ffmpeg cannot seek a pipe, so both ends go through files in a
per-call temporary directory instead of stdin/stdout.

Two stages are tried in a fixed order:

1. stream copy -- repackage the existing streams; fast and lossless.
2. reencode -- libx264/aac, only when stream copy failed (e.g. codecs the
   MP4 container cannot carry).
"""

from __future__ import annotations

import enum
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..config.settings import cfg
from ..util.async_helpers import run_sync
from .errors import ProcessError, RemuxError
from .process import ProcessRunner

logger = logging.getLogger(__name__)

MATROSKA_MIME = "video/x-matroska"
MP4_MIME = "video/mp4"


class RemuxStage(enum.Enum):
    stream_copy = "stream_copy"
    reencode = "reencode"


@dataclass(frozen=True)
class RemuxResult:
    stage: RemuxStage
    data: bytes


def stream_copy_args(src: Path, dst: Path) -> list[str]:
    return [
        "-hide_banner",
        "-loglevel", "error",
        "-i", str(src),
        "-c", "copy",
        "-movflags", "+faststart",
        "-f", "mp4",
        "-y", str(dst),
    ]


def reencode_args(src: Path, dst: Path) -> list[str]:
    return [
        "-hide_banner",
        "-loglevel", "error",
        "-i", str(src),
        "-c:v", "libx264",
        "-preset", "fast",
        "-crf", "23",
        "-c:a", "aac",
        "-movflags", "+faststart",
        "-f", "mp4",
        "-y", str(dst),
    ]


def _read_output(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return b""


async def _run_stage(
    runner: ProcessRunner,
    stage: RemuxStage,
    args: list[str],
    budget: float,
    dst: Path,
) -> bytes | None:
    dst.unlink(missing_ok=True)
    logger.info("Attempting MKV -> MP4 %s", stage.value)
    try:
        await runner.run(cfg.ffmpeg_bin, args, read_timeout=budget, capture_stdout=False)
    except ProcessError as exc:
        logger.warning("MKV -> MP4 %s failed: %s", stage.value, exc)
        return None
    output = await run_sync(_read_output, dst)
    if not output:
        logger.warning("MKV -> MP4 %s produced no output", stage.value)
        return None
    return output


async def remux_to_mp4(
    data: bytes,
    *,
    runner: ProcessRunner | None = None,
    stream_copy_timeout: float | None = None,
    reencode_timeout: float | None = None,
) -> RemuxResult:
    """Convert Matroska *data* to MP4, trying stream copy before reencoding.

    Raises :class:`RemuxError` when both stages fail; callers should keep
    the original bytes in that case.
    """
    runner = runner or ProcessRunner()
    stages = (
        (RemuxStage.stream_copy, stream_copy_args,
         stream_copy_timeout if stream_copy_timeout is not None else cfg.remux_timeout),
        (RemuxStage.reencode, reencode_args,
         reencode_timeout if reencode_timeout is not None else cfg.reencode_timeout),
    )
    with tempfile.TemporaryDirectory(prefix="matrix-embed-remux-") as tmp:
        src = Path(tmp) / "input.mkv"
        dst = Path(tmp) / "output.mp4"
        await run_sync(src.write_bytes, data)

        for stage, build_args, budget in stages:
            output = await _run_stage(runner, stage, build_args(src, dst), budget, dst)
            if output is not None:
                logger.info(
                    "MKV -> MP4 %s succeeded (%d bytes -> %d bytes)",
                    stage.value, len(data), len(output),
                )
                return RemuxResult(stage=stage, data=output)

    raise RemuxError("ffmpeg could not produce an MP4 by stream copy or reencode")
