"""Render a single JPEG frame from the start of a media file."""

from __future__ import annotations

from ..config.settings import cfg
from .errors import ProcessError, ThumbnailError
from .process import ProcessRunner

THUMBNAIL_MIME = "image/jpeg"


def thumbnail_args(target_width: int) -> list[str]:
    # Height -1 keeps the aspect ratio.
    return [
        "-hide_banner",
        "-loglevel", "error",
        "-i", "-",
        "-ss", "0",
        "-vframes", "1",
        "-vf", f"scale={target_width}:-1",
        "-f", "image2",
        "-c:v", "mjpeg",
        "-",
    ]


async def generate_thumbnail(
    data: bytes,
    target_width: int,
    *,
    runner: ProcessRunner | None = None,
    write_timeout: float | None = None,
    read_timeout: float | None = None,
) -> bytes:
    if target_width <= 0:
        raise ThumbnailError(f"Invalid thumbnail width: {target_width}")
    runner = runner or ProcessRunner()
    try:
        result = await runner.run(
            cfg.ffmpeg_bin,
            thumbnail_args(target_width),
            input_bytes=data,
            write_timeout=write_timeout if write_timeout is not None else cfg.thumbnail_timeout,
            read_timeout=read_timeout if read_timeout is not None else cfg.thumbnail_timeout,
        )
    except ProcessError as exc:
        raise ThumbnailError(str(exc)) from exc
    if not result.stdout:
        raise ThumbnailError("ffmpeg produced no thumbnail data")
    return result.stdout
