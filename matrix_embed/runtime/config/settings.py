"""Application settings -- reads from environment and ``.env`` file."""

from __future__ import annotations

import json
import logging
import os
import re
from typing import ClassVar

from ..util.env_file import EnvFile
from ..util.singletons import register_singleton

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024
DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = 30.0
DEFAULT_THUMBNAIL_WIDTH = 600
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; Discordbot/2.0; +https://discordapp.com)"
DEFAULT_SUPPRESSED_CARD_TYPES: frozenset[str] = frozenset({"summary", "tweet"})
DEFAULT_IGNORED_TITLE_PATTERNS: tuple[str, ...] = (r"^(Image|Video|Audio) File$",)


class Settings:

    _DOTENV_ENV: ClassVar[str] = "DOTENV_PATH"

    def __init__(self) -> None:
        self.reload()

    def reload(self) -> None:
        self.env = EnvFile(os.getenv(self._DOTENV_ENV) or ".env")
        e = self._read

        self.max_file_size: int = self._int("MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE)
        self.download_timeout: float = self._float(
            "DOWNLOAD_TIMEOUT_SECONDS", DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
        )
        self.thumbnail_width: int = self._int("THUMBNAIL_WIDTH", DEFAULT_THUMBNAIL_WIDTH)
        self.user_agent: str = e("USER_AGENT") or DEFAULT_USER_AGENT
        self.proxy: str | None = e("HTTP_PROXY_URL") or None

        self.ffprobe_bin: str = e("FFPROBE_BIN") or "ffprobe"
        self.ffmpeg_bin: str = e("FFMPEG_BIN") or "ffmpeg"
        self.probe_timeout: float = self._float("PROBE_TIMEOUT_SECONDS", 10.0)
        self.thumbnail_timeout: float = self._float("THUMBNAIL_TIMEOUT_SECONDS", 10.0)
        self.remux_timeout: float = self._float("REMUX_TIMEOUT_SECONDS", 20.0)
        self.reencode_timeout: float = self._float("REENCODE_TIMEOUT_SECONDS", 60.0)

        raw_cards = e("SUPPRESSED_CARD_TYPES")
        self.suppressed_card_types: frozenset[str] = frozenset(
            card.strip() for card in raw_cards.split(",") if card.strip()
        ) if raw_cards else DEFAULT_SUPPRESSED_CARD_TYPES

        self.ignored_title_patterns: tuple[re.Pattern[str], ...] = self._patterns(
            e("IGNORED_TITLE_PATTERNS"),
        )

    def _read(self, key: str) -> str:
        return self.env.read(key) or os.getenv(key, "")

    def _int(self, key: str, default: int) -> int:
        raw = self._read(key)
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("Invalid integer for %s=%r; using default %d", key, raw, default)
            return default

    def _float(self, key: str, default: float) -> float:
        raw = self._read(key)
        if not raw:
            return default
        try:
            return float(raw)
        except ValueError:
            logger.warning("Invalid number for %s=%r; using default %s", key, raw, default)
            return default

    @staticmethod
    def _patterns(raw: str) -> tuple[re.Pattern[str], ...]:
        if not raw:
            return tuple(re.compile(p) for p in DEFAULT_IGNORED_TITLE_PATTERNS)
        try:
            values = json.loads(raw)
        except json.JSONDecodeError:
            values = [raw]
        if isinstance(values, str):
            values = [values]
        compiled: list[re.Pattern[str]] = []
        for value in values:
            try:
                compiled.append(re.compile(str(value)))
            except re.error as exc:
                logger.warning("Ignoring invalid title pattern %r: %s", value, exc)
        return tuple(compiled)


cfg = Settings()

register_singleton(cfg.reload)
