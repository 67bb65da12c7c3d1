"""Streaming HTTP downloads held to a byte budget."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiohttp

from ..config.settings import cfg
from ..util.async_helpers import run_sync
from .errors import TooLargeError, TransportError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class DownloadOutcome:
    """Response metadata plus the body, which lives in a temporary file.

    The file is owned by :meth:`Downloader.download` and disappears when
    its context exits, so read what you need inside the ``async with``.
    """

    final_url: str
    declared_length: int | None
    content_type: str | None
    content_disposition: str | None
    path: Path
    size: int

    def read_head(self, n: int) -> bytes:
        with self.path.open("rb") as fh:
            return fh.read(n)

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


async def _consume(content: Any, byte_budget: int, path: Path) -> int:
    """Copy the response body into *path*; the budget is checked before each write."""
    total = 0
    fh = await run_sync(path.open, "wb")
    try:
        async for chunk in content.iter_chunked(CHUNK_SIZE):
            total += len(chunk)
            if total > byte_budget:
                raise TooLargeError("streamed", total, byte_budget)
            await run_sync(fh.write, chunk)
    finally:
        await run_sync(fh.close)
    return total


async def receive(response: Any, byte_budget: int, path: Path) -> DownloadOutcome:
    """Validate *response* and stream its body into *path*.

    A declared ``Content-Length`` above the budget fails before a single
    body byte is read.
    """
    if response.status >= 400:
        raise TransportError(f"HTTP {response.status} fetching {response.url}")

    declared = response.content_length
    if declared is not None and declared > byte_budget:
        raise TooLargeError("declared", declared, byte_budget)

    size = await _consume(response.content, byte_budget, path)
    return DownloadOutcome(
        final_url=str(response.url),
        declared_length=declared,
        content_type=response.headers.get("Content-Type"),
        content_disposition=response.headers.get("Content-Disposition"),
        path=path,
        size=size,
    )


class Downloader:
    """Fetches URLs with the configured User-Agent and optional proxy.

    Pass a long-lived ``aiohttp.ClientSession`` to reuse connections; it is
    never closed here.  Without one, each download opens and closes its own.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        user_agent: str | None = None,
        proxy: str | None = None,
    ) -> None:
        self._session = session
        self._user_agent = user_agent or cfg.user_agent
        self._proxy = proxy if proxy is not None else cfg.proxy

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession() as session:
            yield session

    @asynccontextmanager
    async def download(
        self,
        url: str,
        byte_budget: int,
        *,
        timeout: float | None = None,
    ) -> AsyncIterator[DownloadOutcome]:
        total = timeout if timeout is not None else cfg.download_timeout
        fd, name = tempfile.mkstemp(prefix="matrix-embed-dl-")
        os.close(fd)
        path = Path(name)
        try:
            outcome = await self._fetch(url, byte_budget, total, path)
            yield outcome
        finally:
            path.unlink(missing_ok=True)

    async def _fetch(self, url: str, byte_budget: int, timeout: float, path: Path) -> DownloadOutcome:
        logger.info("Downloading %s (budget %d bytes)", url, byte_budget)
        try:
            async with self._session_scope() as session:
                async with session.get(
                    url,
                    headers={"User-Agent": self._user_agent},
                    proxy=self._proxy,
                    timeout=aiohttp.ClientTimeout(total=timeout),
                ) as resp:
                    outcome = await receive(resp, byte_budget, path)
        except TimeoutError as exc:
            raise TransportError(f"Timed out after {timeout}s fetching {url}") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request failed for {url}: {exc}") from exc

        logger.debug(
            "Downloaded %d bytes from %s (declared %s)",
            outcome.size, outcome.final_url, outcome.declared_length,
        )
        return outcome
