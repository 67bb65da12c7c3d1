"""MIME sniffing, extension tables, and attachment filename resolution."""

from __future__ import annotations

import logging
import mimetypes
import re
from pathlib import PurePosixPath
from urllib.parse import unquote, urlsplit

import filetype

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"

# filetype inspects at most this many leading bytes.
SNIFF_BYTES = 8192

# Accepted extensions per MIME type; the first entry is canonical.
MIME_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "image/jpeg": ("jpg", "jpeg", "jpe", "jfif"),
    "image/png": ("png",),
    "image/gif": ("gif",),
    "image/webp": ("webp",),
    "image/avif": ("avif",),
    "image/heic": ("heic",),
    "image/heif": ("heif",),
    "image/bmp": ("bmp",),
    "image/tiff": ("tiff", "tif"),
    "image/svg+xml": ("svg",),
    "video/mp4": ("mp4", "m4v", "mp4v", "mpg4"),
    "video/x-m4v": ("m4v",),
    "video/webm": ("webm",),
    "video/x-matroska": ("mkv",),
    "video/quicktime": ("mov", "qt"),
    "video/x-msvideo": ("avi",),
    "video/mpeg": ("mpeg", "mpg"),
    "video/x-flv": ("flv",),
    "audio/mpeg": ("mp3",),
    "audio/ogg": ("ogg", "oga", "opus"),
    "audio/mp4": ("m4a",),
    "audio/x-m4a": ("m4a",),
    "audio/aac": ("aac",),
    "audio/flac": ("flac",),
    "audio/x-flac": ("flac",),
    "audio/wav": ("wav",),
    "audio/x-wav": ("wav",),
    "audio/webm": ("weba",),
    "application/pdf": ("pdf",),
}

EXTENSION_TO_MIME: dict[str, str] = {}
for _mime, _exts in MIME_EXTENSIONS.items():
    for _ext in _exts:
        EXTENSION_TO_MIME.setdefault(f".{_ext}", _mime)

_MIME_RE = re.compile(r"^[a-z0-9][a-z0-9!#$&^_.+-]*/[a-z0-9][a-z0-9!#$&^_.+-]*$")


def classify(content_type: str) -> str:
    """Map a MIME type onto the attachment kind a messaging client renders."""
    major = content_type.split("/", 1)[0].lower()
    if major in ("image", "video", "audio"):
        return major
    return "file"


def sniff_mime(head: bytes) -> str | None:
    """Return the MIME type implied by the leading signature bytes, if known."""
    if not head:
        return None
    return filetype.guess_mime(head[:SNIFF_BYTES])


def normalize_content_type(value: str | None) -> str | None:
    """Reduce a Content-Type header to its ``type/subtype`` essence."""
    if not value:
        return None
    essence = value.split(";", 1)[0].strip().lower()
    return essence if _MIME_RE.match(essence) else None


def guess_mime_from_url(url: str) -> str | None:
    suffix = PurePosixPath(unquote(urlsplit(url).path)).suffix.lower()
    if not suffix:
        return None
    return EXTENSION_TO_MIME.get(suffix) or mimetypes.guess_type(f"file{suffix}")[0]


def resolve_mime(sniffed: str | None, declared: str | None, final_url: str) -> str:
    """Pick the final MIME type: sniffed, then declared, then URL, then binary.

    Sniffing wins over the header because media hosts routinely serve
    video as ``application/octet-stream`` or images as ``text/html``.
    """
    if sniffed:
        return sniffed
    header = normalize_content_type(declared)
    if header:
        return header
    return guess_mime_from_url(final_url) or OCTET_STREAM


def extensions_for(mime_type: str) -> tuple[str, ...]:
    """Accepted extensions for *mime_type* (without dots), canonical first."""
    mime_type = mime_type.lower()
    known = MIME_EXTENSIONS.get(mime_type)
    if known:
        return known
    canonical = mimetypes.guess_extension(mime_type)
    others = sorted(mimetypes.guess_all_extensions(mime_type))
    ordered = [canonical] if canonical else []
    ordered.extend(ext for ext in others if ext != canonical)
    return tuple(ext.lstrip(".") for ext in ordered)


def preferred_extension(mime_type: str) -> str | None:
    exts = extensions_for(mime_type)
    return exts[0] if exts else None


def filename_from_disposition(header: str | None) -> str | None:
    """Extract ``filename*`` (RFC 5987) or ``filename`` from Content-Disposition."""
    if not header:
        return None
    plain: str | None = None
    for part in header.split(";")[1:]:
        name, sep, value = part.strip().partition("=")
        if not sep:
            continue
        name = name.strip().lower()
        cleaned = value.strip()
        if name == "filename*":
            segments = cleaned.strip('"').split("'", 2)
            if len(segments) == 3 and segments[2]:
                charset = segments[0] or "utf-8"
                try:
                    return unquote(segments[2], encoding=charset, errors="replace")
                except LookupError:
                    logger.debug("Unknown filename* charset %r, decoding as utf-8", charset)
                    return unquote(segments[2], encoding="utf-8", errors="replace")
        elif name == "filename" and plain is None:
            if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] == '"':
                cleaned = cleaned[1:-1]
            if cleaned:
                plain = cleaned
    return plain


def filename_from_url(url: str) -> str | None:
    segment = urlsplit(url).path.rsplit("/", 1)[-1]
    return unquote(segment) or None


def _strip_directories(name: str) -> str:
    return name.replace("\\", "/").rsplit("/", 1)[-1].strip()


def _has_accepted_extension(name: str, accepted: tuple[str, ...]) -> bool:
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return False
    ext = ext.lower()
    return any(ext == candidate.lower() for candidate in accepted)


def resolve_filename(
    mime_type: str,
    content_disposition: str | None,
    final_url: str,
) -> str:
    """Choose the attachment filename and make its extension agree with *mime_type*.

    Names such as ``photo.jpg:large`` or ``clip.mp4:orig`` carry an
    extension strict clients do not recognise, so the canonical one is
    appended rather than substituted.
    """
    accepted = extensions_for(mime_type)
    canonical = accepted[0] if accepted else None

    found = filename_from_disposition(content_disposition) or filename_from_url(final_url)
    name = _strip_directories(found) if found else ""
    if not name or name in (".", ".."):
        fallback = f"media.{canonical}" if canonical else "media"
        logger.debug("Using fallback filename: %s", fallback)
        return fallback

    if canonical and not _has_accepted_extension(name, accepted):
        name = f"{name}.{canonical}"
    logger.debug("Discovered filename: %s", name)
    return name
