"""Tests for the httpx-based fetcher."""

import asyncio
from pathlib import Path

import httpx
import pytest

from app.providers.exceptions import DownloadError
from app.providers.http_client import HttpFetcher, extension_for_content_type


def make_fetcher(handler, max_redirects: int = 5) -> HttpFetcher:
    return HttpFetcher(
        user_agent="test-agent/1.0",
        timeout=5,
        max_redirects=max_redirects,
        transport=httpx.MockTransport(handler),
    )


class TestExtension:
    @pytest.mark.parametrize(
        "content_type,expected",
        [
            ("audio/mpeg", "mp3"),
            ("Audio/MP4; charset=binary", "mp3"),
            ("video/mp4", "mp4"),
            ("application/octet-stream", "mp4"),
            (None, "mp4"),
        ],
    )
    def test_extension_for_content_type(self, content_type, expected: str):
        assert extension_for_content_type(content_type) == expected


class TestPostForm:
    @pytest.mark.asyncio
    async def test_sends_form_and_user_agent(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ua"] = request.headers["user-agent"]
            seen["origin"] = request.headers.get("origin")
            seen["body"] = request.content.decode()
            seen["content_type"] = request.headers["content-type"]
            return httpx.Response(200, text="<html>ok</html>")

        fetcher = make_fetcher(handler)
        body = await fetcher.post_form(
            "https://scraper.test/abc",
            data={"id": "https://www.tiktok.com/@u/video/1", "locale": "en"},
            headers={"Origin": "https://scraper.test"},
        )

        assert body == "<html>ok</html>"
        assert seen["ua"] == "test-agent/1.0"
        assert seen["origin"] == "https://scraper.test"
        assert seen["content_type"] == "application/x-www-form-urlencoded"
        assert "locale=en" in seen["body"]

    @pytest.mark.asyncio
    async def test_non_200_raises(self):
        fetcher = make_fetcher(lambda request: httpx.Response(403, text="blocked"))

        with pytest.raises(DownloadError, match="HTTP 403"):
            await fetcher.post_form("https://scraper.test/abc", data={"url": "x"})

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = make_fetcher(handler)

        with pytest.raises(DownloadError, match="failed"):
            await fetcher.post_form("https://scraper.test/abc", data={"url": "x"})


class TestDownloadTo:
    @pytest.mark.asyncio
    async def test_writes_video(self, tmp_path: Path):
        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200, content=b"\x00\x01video", headers={"content-type": "video/mp4"}
            )
        )

        path = await fetcher.download_to("https://cdn.test/v.mp4", tmp_path)

        assert path == tmp_path / "video.mp4"
        assert path.read_bytes() == b"\x00\x01video"

    @pytest.mark.asyncio
    async def test_audio_content_type_gives_mp3(self, tmp_path: Path):
        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200, content=b"ID3audio", headers={"content-type": "audio/mpeg"}
            )
        )

        path = await fetcher.download_to("https://cdn.test/a", tmp_path)

        assert path.suffix == ".mp3"

    @pytest.mark.asyncio
    async def test_follows_redirects(self, tmp_path: Path):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/start":
                return httpx.Response(302, headers={"location": "https://cdn.test/final"})
            return httpx.Response(200, content=b"final", headers={"content-type": "video/mp4"})

        fetcher = make_fetcher(handler)
        path = await fetcher.download_to("https://cdn.test/start", tmp_path)

        assert path.read_bytes() == b"final"

    @pytest.mark.asyncio
    async def test_too_many_redirects(self, tmp_path: Path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"location": "https://cdn.test/loop"})

        fetcher = make_fetcher(handler, max_redirects=2)

        with pytest.raises(DownloadError, match="Too many redirects"):
            await fetcher.download_to("https://cdn.test/loop", tmp_path)

    @pytest.mark.asyncio
    async def test_non_200_raises(self, tmp_path: Path):
        fetcher = make_fetcher(lambda request: httpx.Response(404))

        with pytest.raises(DownloadError, match="HTTP 404"):
            await fetcher.download_to("https://cdn.test/missing", tmp_path)

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_empty_body_raises(self, tmp_path: Path):
        fetcher = make_fetcher(
            lambda request: httpx.Response(200, content=b"", headers={"content-type": "video/mp4"})
        )

        with pytest.raises(DownloadError, match="empty"):
            await fetcher.download_to("https://cdn.test/empty", tmp_path)

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_broken_stream_leaves_no_file(self, tmp_path: Path):
        async def body():
            yield b"\x00" * 70_000
            raise httpx.ReadError("connection reset by peer")

        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200, content=body(), headers={"content-type": "video/mp4"}
            )
        )

        with pytest.raises(DownloadError, match="connection reset"):
            await fetcher.download_to("https://cdn.test/v.mp4", tmp_path)

        assert list(tmp_path.iterdir()) == []


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_slow_stream_bounded_by_total_timeout(self, tmp_path: Path):
        async def trickle():
            while True:
                yield b"x"
                await asyncio.sleep(0.05)

        fetcher = HttpFetcher(
            timeout=0.3,
            transport=httpx.MockTransport(
                lambda request: httpx.Response(
                    200, content=trickle(), headers={"content-type": "video/mp4"}
                )
            ),
        )

        with pytest.raises(DownloadError, match="timed out after 0.3s"):
            await fetcher.download_to("https://cdn.test/slow", tmp_path)

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_slow_form_post_times_out(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, text="late")

        fetcher = HttpFetcher(timeout=0.1, transport=httpx.MockTransport(handler))

        with pytest.raises(DownloadError, match="timed out"):
            await fetcher.post_form("https://scraper.test/abc", data={"url": "x"})

    @pytest.mark.asyncio
    async def test_zero_disables_timeout(self, tmp_path: Path):
        fetcher = HttpFetcher(
            timeout=0,
            transport=httpx.MockTransport(
                lambda request: httpx.Response(
                    200, content=b"ok", headers={"content-type": "video/mp4"}
                )
            ),
        )

        assert fetcher.timeout is None
        path = await fetcher.download_to("https://cdn.test/v.mp4", tmp_path)
        assert path.read_bytes() == b"ok"
