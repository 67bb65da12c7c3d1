"""Probe intrinsic media dimensions with ffprobe over stdin/stdout."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..config.settings import cfg
from .errors import ProbeError, ProcessError
from .process import ProcessRunner

logger = logging.getLogger(__name__)

PROBE_ARGS: tuple[str, ...] = (
    "-v", "error",
    "-select_streams", "v:0",
    "-show_entries", "stream=width,height",
    "-of", "csv=s=x:p=0",
    "-",
)

_DIMENSIONS_RE = re.compile(r"([0-9]+)x([0-9]+)")


@dataclass(frozen=True)
class MediaInfo:
    width: int
    height: int


def parse_dimensions(output: str) -> MediaInfo:
    """Parse ffprobe's ``WIDTHxHEIGHT`` line; any other shape is an error."""
    trimmed = output.strip()
    if not trimmed:
        raise ProbeError("ffprobe returned empty output")
    match = _DIMENSIONS_RE.fullmatch(trimmed)
    if not match:
        raise ProbeError(f"Unexpected ffprobe output format: {trimmed!r}")
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise ProbeError(f"ffprobe reported empty dimensions: {trimmed!r}")
    return MediaInfo(width=width, height=height)


async def probe_media(
    data: bytes,
    *,
    runner: ProcessRunner | None = None,
    write_timeout: float | None = None,
    read_timeout: float | None = None,
) -> MediaInfo:
    runner = runner or ProcessRunner()
    try:
        result = await runner.run(
            cfg.ffprobe_bin,
            PROBE_ARGS,
            input_bytes=data,
            write_timeout=write_timeout if write_timeout is not None else cfg.probe_timeout,
            read_timeout=read_timeout if read_timeout is not None else cfg.probe_timeout,
        )
    except ProcessError as exc:
        raise ProbeError(str(exc)) from exc
    info = parse_dimensions(result.stdout.decode(errors="replace"))
    logger.debug("Probed dimensions %dx%d", info.width, info.height)
    return info
