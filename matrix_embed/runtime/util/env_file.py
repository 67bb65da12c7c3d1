"""Read-only ``.env`` file parser."""

from __future__ import annotations

import threading
from pathlib import Path


class EnvFile:
    """Parses a ``KEY=VALUE`` file, re-reading it only when it changes on disk.

    Lines may carry a leading ``export``; blank lines and ``#`` comments are
    skipped and surrounding quotes are stripped from values.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._mtime: float | None = None
        self._values: dict[str, str] = {}

    def read(self, key: str) -> str:
        """Return the value for *key*, or ``""`` if absent."""
        return self.read_all().get(key, "")

    def read_all(self) -> dict[str, str]:
        with self._lock:
            try:
                mtime = self.path.stat().st_mtime
            except OSError:
                self._mtime = None
                self._values = {}
                return {}
            if mtime != self._mtime:
                self._values = self._parse(self.path.read_text())
                self._mtime = mtime
            return dict(self._values)

    @staticmethod
    def _parse(text: str) -> dict[str, str]:
        result: dict[str, str] = {}
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export "):]
            key, _, value = line.partition("=")
            result[key.strip()] = value.strip().strip('"').strip("'")
        return result
