"""Turn parsed link-preview metadata into message text and a media URL."""

from __future__ import annotations

import html
import re
from collections.abc import Iterable
from dataclasses import dataclass

from ..config.settings import cfg


@dataclass(frozen=True)
class PageMetadata:
    """OpenGraph / Twitter card fields extracted from a web page."""

    card: str | None = None
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    video_url: str | None = None
    audio_url: str | None = None


@dataclass(frozen=True)
class Caption:
    body: str
    html_body: str


@dataclass(frozen=True)
class MessageParams:
    body: str
    html_body: str
    media_url: str | None = None

    def caption(self) -> Caption | None:
        if not self.body and not self.html_body:
            return None
        return Caption(body=self.body, html_body=self.html_body)


def _to_html(text: str) -> str:
    return html.escape(text, quote=False).replace("\n", "<br/>")


def build_message_params(
    meta: PageMetadata,
    *,
    suppressed_cards: Iterable[str] | None = None,
    ignored_title_patterns: Iterable[re.Pattern[str]] | None = None,
) -> MessageParams:
    """Build the plain and HTML caption for *meta* and pick the media to attach.

    Cards listed in *suppressed_cards* (``summary`` and ``tweet`` by
    default) carry no media worth embedding.  Titles matching any of
    *ignored_title_patterns* are generic placeholders such as
    ``Video File`` and are dropped.
    """
    suppressed = frozenset(suppressed_cards if suppressed_cards is not None else cfg.suppressed_card_types)
    patterns = tuple(
        ignored_title_patterns if ignored_title_patterns is not None else cfg.ignored_title_patterns
    )

    media_url = None
    if meta.card not in suppressed:
        media_url = meta.video_url or meta.audio_url or meta.image_url

    title = meta.title
    if title is not None and any(p.search(title) for p in patterns):
        title = None
    description = meta.description

    if title is not None and description is not None:
        body = f"{title}: {description}"
    else:
        body = title or description or ""

    html_body = ""
    if title is not None or description is not None:
        parts = ["<br/>" if media_url else "", "<blockquote>"]
        if title is not None:
            suffix = ":" if description is not None else ""
            parts.append(f"<strong>{_to_html(title)}{suffix}</strong>")
        if description is not None:
            parts.append(f"<p>{_to_html(description)}</p>")
        parts.append("</blockquote>")
        html_body = "".join(parts)

    return MessageParams(body=body, html_body=html_body, media_url=media_url)
