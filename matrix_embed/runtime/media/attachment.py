"""Download a URL and assemble an upload-ready attachment record.

Only the download itself can fail the whole operation.  Everything after
it is best effort: a Matroska file that will not remux is sent as-is, a
file ffprobe cannot read is sent without dimensions, and so on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config.settings import cfg
from ..messaging.caption import Caption
from ..util.async_helpers import run_sync
from .classify import SNIFF_BYTES, classify, resolve_filename, resolve_mime, sniff_mime
from .download import Downloader, DownloadOutcome
from .errors import EncodeError, ProbeError, RemuxError, ThumbnailError
from .placeholder import encode_placeholder
from .probe import MediaInfo, probe_media
from .process import ProcessRunner
from .remux import MATROSKA_MIME, MP4_MIME, remux_to_mp4
from .thumbnail import THUMBNAIL_MIME, generate_thumbnail

logger = logging.getLogger(__name__)

_DIMENSIONED_KINDS = frozenset({"image", "video"})


@dataclass(frozen=True)
class Thumbnail:
    data: bytes
    mime_type: str
    width: int
    height: int

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AttachmentResult:
    filename: str
    mime_type: str
    data: bytes
    width: int | None = None
    height: int | None = None
    placeholder: str | None = None
    thumbnail: Thumbnail | None = None
    caption: Caption | None = None

    @property
    def kind(self) -> str:
        return classify(self.mime_type)

    @property
    def size(self) -> int:
        return len(self.data)


class AttachmentAssembler:
    """Runs the media pipeline for one URL at a time.

    ``runner`` and ``downloader`` are the seams tests replace; an
    assembler holds no per-request state and can be shared.
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        downloader: Downloader | None = None,
        thumbnail_width: int | None = None,
    ) -> None:
        self._runner = runner or ProcessRunner()
        self._downloader = downloader or Downloader()
        self._thumbnail_width = thumbnail_width or cfg.thumbnail_width

    async def process_downloaded_url(
        self,
        url: str,
        byte_budget: int,
        download_timeout: float,
        caption: Caption | None = None,
    ) -> AttachmentResult:
        async with self._downloader.download(url, byte_budget, timeout=download_timeout) as outcome:
            return await self.assemble(outcome, caption, byte_budget)

    async def assemble(
        self,
        outcome: DownloadOutcome,
        caption: Caption | None = None,
        byte_budget: int | None = None,
    ) -> AttachmentResult:
        if byte_budget is None:
            byte_budget = cfg.max_file_size
        head = await run_sync(outcome.read_head, SNIFF_BYTES)
        sniffed = sniff_mime(head)
        if sniffed:
            logger.debug("Sniffed MIME type from content: %s", sniffed)
        mime_type = resolve_mime(sniffed, outcome.content_type, outcome.final_url)
        logger.debug("Final MIME type: %s", mime_type)

        data = await run_sync(outcome.read_bytes)
        if mime_type == MATROSKA_MIME:
            data, mime_type = await self._normalize_container(data, mime_type, byte_budget)

        kind = classify(mime_type)
        width = height = None
        placeholder = None
        thumbnail = None

        info = await self._probe(data, "media")
        if info is not None:
            logger.debug("Dimensions: %dx%d", info.width, info.height)
            thumb_bytes = await self._thumbnail(data)
            if thumb_bytes is not None:
                if kind in _DIMENSIONED_KINDS:
                    placeholder = await self._placeholder(thumb_bytes)
                thumbnail = await self._describe_thumbnail(thumb_bytes)
            if kind in _DIMENSIONED_KINDS:
                width, height = info.width, info.height

        filename = resolve_filename(mime_type, outcome.content_disposition, outcome.final_url)
        logger.info("Assembled %s attachment %s (%s, %d bytes)", kind, filename, mime_type, len(data))
        return AttachmentResult(
            filename=filename,
            mime_type=mime_type,
            data=data,
            width=width,
            height=height,
            placeholder=placeholder,
            thumbnail=thumbnail,
            caption=caption,
        )

    async def _normalize_container(self, data: bytes, mime_type: str, byte_budget: int) -> tuple[bytes, str]:
        try:
            result = await remux_to_mp4(data, runner=self._runner)
        except RemuxError as exc:
            logger.warning("Failed to remux MKV to MP4, using original: %s", exc)
            return data, mime_type
        if len(result.data) > byte_budget:
            logger.warning(
                "Remuxed MP4 is %d bytes, over the %d byte budget, using original",
                len(result.data),
                byte_budget,
            )
            return data, mime_type
        logger.info("Remuxed MKV to MP4 (%s)", result.stage.value)
        return result.data, MP4_MIME

    async def _probe(self, data: bytes, what: str) -> MediaInfo | None:
        try:
            return await probe_media(data, runner=self._runner)
        except ProbeError as exc:
            logger.warning("Failed to probe %s: %s", what, exc)
            return None

    async def _thumbnail(self, data: bytes) -> bytes | None:
        try:
            return await generate_thumbnail(data, self._thumbnail_width, runner=self._runner)
        except ThumbnailError as exc:
            logger.warning("Failed to generate thumbnail: %s", exc)
            return None

    @staticmethod
    async def _placeholder(thumb_bytes: bytes) -> str | None:
        try:
            return await run_sync(encode_placeholder, thumb_bytes)
        except EncodeError as exc:
            logger.warning("Failed to encode placeholder: %s", exc)
            return None

    async def _describe_thumbnail(self, thumb_bytes: bytes) -> Thumbnail | None:
        info = await self._probe(thumb_bytes, "thumbnail")
        if info is None:
            return None
        return Thumbnail(
            data=thumb_bytes,
            mime_type=THUMBNAIL_MIME,
            width=info.width,
            height=info.height,
        )


async def process_downloaded_url(
    url: str,
    byte_budget: int | None = None,
    download_timeout: float | None = None,
    caption: Caption | None = None,
) -> AttachmentResult:
    """Convenience wrapper using settings for every unspecified limit."""
    assembler = AttachmentAssembler()
    return await assembler.process_downloaded_url(
        url,
        byte_budget if byte_budget is not None else cfg.max_file_size,
        download_timeout if download_timeout is not None else cfg.download_timeout,
        caption,
    )
