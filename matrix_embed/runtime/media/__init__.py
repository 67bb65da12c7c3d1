"""Media pipeline -- download, type resolution, probing, thumbnails, and remuxing."""

from .attachment import AttachmentAssembler, AttachmentResult, Thumbnail, process_downloaded_url
from .classify import EXTENSION_TO_MIME, classify, resolve_filename, resolve_mime, sniff_mime
from .download import Downloader, DownloadOutcome
from .errors import (
    EncodeError,
    MediaError,
    NamingError,
    ProbeError,
    ProcessError,
    RemuxError,
    ThumbnailError,
    TooLargeError,
    TransportError,
)
from .placeholder import encode_placeholder
from .probe import MediaInfo, probe_media
from .process import ProcessResult, ProcessRunner
from .remux import RemuxResult, RemuxStage, remux_to_mp4
from .thumbnail import generate_thumbnail

__all__ = [
    "EXTENSION_TO_MIME",
    "AttachmentAssembler",
    "AttachmentResult",
    "DownloadOutcome",
    "Downloader",
    "EncodeError",
    "MediaError",
    "MediaInfo",
    "NamingError",
    "ProbeError",
    "ProcessError",
    "ProcessResult",
    "ProcessRunner",
    "RemuxError",
    "RemuxResult",
    "RemuxStage",
    "Thumbnail",
    "ThumbnailError",
    "TooLargeError",
    "TransportError",
    "classify",
    "encode_placeholder",
    "generate_thumbnail",
    "probe_media",
    "process_downloaded_url",
    "remux_to_mp4",
    "resolve_filename",
    "resolve_mime",
    "sniff_mime",
]
