"""Tests for the streaming downloader."""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from matrix_embed.runtime.media.download import CHUNK_SIZE, Downloader, receive
from matrix_embed.runtime.media.errors import TooLargeError, TransportError

STALLED = web.AppKey("stalled", asyncio.Event)


class _FakeContent:
    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.reads = 0

    async def iter_chunked(self, n: int):
        for chunk in self.chunks:
            self.reads += 1
            yield chunk


class _FakeResponse:
    def __init__(
        self,
        chunks: list[bytes],
        *,
        status: int = 200,
        content_length: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status = status
        self.url = "https://media.example/file.bin"
        self.content_length = content_length
        self.headers = headers or {}
        self.content = _FakeContent(chunks)


async def _stream_chunks(request: web.Request) -> web.StreamResponse:
    resp = web.StreamResponse()
    resp.enable_chunked_encoding()
    await resp.prepare(request)
    for _ in range(3):
        await resp.write(b"c" * 1000)
    await resp.write_eof()
    return resp


async def _stalled(request: web.Request) -> web.StreamResponse:
    resp = web.StreamResponse()
    resp.enable_chunked_encoding()
    await resp.prepare(request)
    await resp.write(b"s" * 1000)
    request.app[STALLED].set()
    await asyncio.sleep(1)
    return resp


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(2)
    return web.Response(body=b"late")


def _build_app() -> web.Application:
    app = web.Application()
    app[STALLED] = asyncio.Event()

    async def ok(request: web.Request) -> web.Response:
        return web.Response(
            body=b"payload-bytes",
            content_type="video/mp4",
            headers={"Content-Disposition": 'attachment; filename="clip.mp4"'},
        )

    async def redirect(request: web.Request) -> web.Response:
        raise web.HTTPFound("/ok")

    async def missing(request: web.Request) -> web.Response:
        return web.Response(status=404, text="not here")

    async def large(request: web.Request) -> web.Response:
        return web.Response(body=b"x" * 2000)

    async def agent(request: web.Request) -> web.Response:
        return web.Response(text=request.headers.get("User-Agent", ""))

    app.router.add_get("/ok", ok)
    app.router.add_get("/redirect", redirect)
    app.router.add_get("/missing", missing)
    app.router.add_get("/large", large)
    app.router.add_get("/stream", _stream_chunks)
    app.router.add_get("/agent", agent)
    app.router.add_get("/slow", _slow)
    app.router.add_get("/stalled", _stalled)
    return app


@pytest.fixture()
def isolated_tmp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


def _leftovers(directory: Path) -> list[Path]:
    return list(directory.glob("matrix-embed-dl-*"))


class TestReceive:
    @pytest.mark.asyncio
    async def test_declared_length_over_budget_reads_no_body(self, tmp_path) -> None:
        resp = _FakeResponse([b"x" * 10], content_length=5000)
        with pytest.raises(TooLargeError) as exc_info:
            await receive(resp, 1000, tmp_path / "body")
        assert exc_info.value.source == "declared"
        assert exc_info.value.size == 5000
        assert exc_info.value.limit == 1000
        assert resp.content.reads == 0

    @pytest.mark.asyncio
    async def test_streamed_overrun_never_exceeds_budget_on_disk(self, tmp_path) -> None:
        target = tmp_path / "body"
        resp = _FakeResponse([b"a" * 600, b"b" * 600, b"c" * 600])
        with pytest.raises(TooLargeError) as exc_info:
            await receive(resp, 1000, target)
        assert exc_info.value.source == "streamed"
        assert exc_info.value.size == 1200
        assert target.stat().st_size <= 1000
        assert resp.content.reads == 2

    @pytest.mark.asyncio
    async def test_exact_budget_accepted(self, tmp_path) -> None:
        resp = _FakeResponse([b"a" * 500, b"b" * 500], content_length=1000)
        outcome = await receive(resp, 1000, tmp_path / "body")
        assert outcome.size == 1000
        assert outcome.declared_length == 1000
        assert outcome.read_head(3) == b"aaa"

    @pytest.mark.asyncio
    async def test_http_error_status(self, tmp_path) -> None:
        resp = _FakeResponse([b"oops"], status=500)
        with pytest.raises(TransportError, match="HTTP 500"):
            await receive(resp, 1000, tmp_path / "body")
        assert resp.content.reads == 0

    @pytest.mark.asyncio
    async def test_headers_copied(self, tmp_path) -> None:
        resp = _FakeResponse(
            [b"data"],
            headers={"Content-Type": "image/png", "Content-Disposition": "inline; filename=a.png"},
        )
        outcome = await receive(resp, 1000, tmp_path / "body")
        assert outcome.content_type == "image/png"
        assert outcome.content_disposition == "inline; filename=a.png"
        assert outcome.final_url == "https://media.example/file.bin"


class TestDownloader:
    @pytest.mark.asyncio
    async def test_successful_download(self, isolated_tmp) -> None:
        async with TestServer(_build_app()) as server:
            downloader = Downloader()
            async with downloader.download(str(server.make_url("/ok")), 1000) as outcome:
                assert outcome.read_bytes() == b"payload-bytes"
                assert outcome.size == len(b"payload-bytes")
                assert outcome.content_type.startswith("video/mp4")
                assert outcome.content_disposition == 'attachment; filename="clip.mp4"'
                path = outcome.path
                assert path.exists()
        assert not path.exists()
        assert _leftovers(isolated_tmp) == []

    @pytest.mark.asyncio
    async def test_redirect_reports_final_url(self) -> None:
        async with TestServer(_build_app()) as server:
            async with Downloader().download(str(server.make_url("/redirect")), 1000) as outcome:
                assert outcome.final_url.endswith("/ok")

    @pytest.mark.asyncio
    async def test_sends_configured_user_agent(self) -> None:
        async with TestServer(_build_app()) as server:
            downloader = Downloader(user_agent="matrix-embed-test/1.0")
            async with downloader.download(str(server.make_url("/agent")), 1000) as outcome:
                assert outcome.read_bytes() == b"matrix-embed-test/1.0"

    @pytest.mark.asyncio
    async def test_default_user_agent_from_settings(self, env_path) -> None:
        env_path.write_text("USER_AGENT=from-dotenv/2.0\n")
        from matrix_embed.runtime.config.settings import cfg

        cfg.reload()
        async with TestServer(_build_app()) as server:
            async with Downloader().download(str(server.make_url("/agent")), 1000) as outcome:
                assert outcome.read_bytes() == b"from-dotenv/2.0"

    @pytest.mark.asyncio
    async def test_http_404_is_transport_error(self, isolated_tmp) -> None:
        async with TestServer(_build_app()) as server:
            with pytest.raises(TransportError, match="404"):
                async with Downloader().download(str(server.make_url("/missing")), 1000):
                    pass
        assert _leftovers(isolated_tmp) == []

    @pytest.mark.asyncio
    async def test_declared_too_large(self, isolated_tmp) -> None:
        async with TestServer(_build_app()) as server:
            with pytest.raises(TooLargeError) as exc_info:
                async with Downloader().download(str(server.make_url("/large")), 1000):
                    pass
        assert exc_info.value.source == "declared"
        assert _leftovers(isolated_tmp) == []

    @pytest.mark.asyncio
    async def test_streamed_too_large(self, isolated_tmp) -> None:
        async with TestServer(_build_app()) as server:
            with pytest.raises(TooLargeError) as exc_info:
                async with Downloader().download(str(server.make_url("/stream")), 2500):
                    pass
        assert exc_info.value.source == "streamed"
        assert _leftovers(isolated_tmp) == []

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self) -> None:
        async with TestServer(_build_app()) as server:
            with pytest.raises(TransportError, match="Timed out"):
                async with Downloader().download(str(server.make_url("/slow")), 1000, timeout=0.2):
                    pass

    @pytest.mark.asyncio
    async def test_connection_refused(self) -> None:
        server = TestServer(_build_app())
        await server.start_server()
        url = str(server.make_url("/ok"))
        await server.close()
        with pytest.raises(TransportError):
            async with Downloader().download(url, 1000):
                pass

    @pytest.mark.asyncio
    async def test_shared_session_left_open(self) -> None:
        async with TestServer(_build_app()) as server:
            async with aiohttp.ClientSession() as session:
                downloader = Downloader(session)
                async with downloader.download(str(server.make_url("/ok")), 1000):
                    pass
                assert not session.closed

    @pytest.mark.asyncio
    async def test_temp_file_removed_when_body_raises(self, isolated_tmp) -> None:
        async with TestServer(_build_app()) as server:
            with pytest.raises(RuntimeError):
                async with Downloader().download(str(server.make_url("/ok")), 1000):
                    raise RuntimeError("consumer failed")
        assert _leftovers(isolated_tmp) == []

    @pytest.mark.asyncio
    async def test_temp_file_removed_when_cancelled_mid_stream(self, isolated_tmp) -> None:
        app = _build_app()
        async with TestServer(app) as server:

            async def consume() -> None:
                async with Downloader().download(str(server.make_url("/stalled")), 10_000, timeout=30):
                    pass

            task = asyncio.create_task(consume())
            await asyncio.wait_for(app[STALLED].wait(), timeout=10)
            await asyncio.sleep(0.1)
            assert _leftovers(isolated_tmp)

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        assert _leftovers(isolated_tmp) == []


def test_chunk_size() -> None:
    assert CHUNK_SIZE == 64 * 1024
