"""
Shared fixtures: a fake extractor standing in for yt-dlp, a controllable clock,
and a local aiohttp server playing the upstream origin.
"""
import asyncio
import threading
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse

import pytest
from aiohttp import web

from audio_relay.api.server import create_app
from audio_relay.config import Config


PAYLOAD = bytes(range(256)) * 800  # 204800 bytes
SLOW_CHUNK = b"s" * 1024


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExtractor:
    """Maps media ids (the ``v`` query param of the target URL) to info dicts.

    A value that is an exception instance is raised instead of returned.
    ``delays`` overrides ``delay_s`` (seconds spent "extracting") per id.
    """

    def __init__(self, infos=None, delay_s: float = 0.0, delays=None):
        self.infos = dict(infos or {})
        self.delay_s = delay_s
        self.delays = dict(delays or {})
        self.calls = []
        self._lock = threading.Lock()

    def extract(self, target, options):
        with self._lock:
            self.calls.append((target, options))
        query = parse_qs(urlparse(target).query)
        key = query["v"][0] if "v" in query else target

        delay = self.delays.get(key, self.delay_s)
        if delay:
            threading.Event().wait(delay)
        info = self.infos.get(key)
        if isinstance(info, BaseException):
            raise info
        return info


def audio_info(url, acodec="mp4a.40.2", filesize=1000, **extra):
    fmt = {"format_id": "140", "url": url, "acodec": acodec, "filesize": filesize, "ext": "m4a"}
    fmt.update(extra)
    return {"id": "x", "formats": [fmt]}


@dataclass
class OriginState:
    requests: list = field(default_factory=list)
    slow_closed: asyncio.Event = field(default_factory=asyncio.Event)


ORIGIN_STATE = web.AppKey("origin_state", OriginState)


def _parse_range(value: str, total: int):
    byte_range = value.split("=", 1)[1]
    start_s, _, end_s = byte_range.partition("-")
    start = int(start_s)
    end = int(end_s) if end_s else total - 1
    return start, min(end, total - 1)


def make_origin_app() -> web.Application:
    state = OriginState()
    app = web.Application()
    app[ORIGIN_STATE] = state

    async def serve_audio(request):
        state.requests.append(dict(request.headers))
        start, end = _parse_range(request.headers.get("Range", "bytes=0-"), len(PAYLOAD))
        return web.Response(
            status=206,
            body=PAYLOAD[start:end + 1],
            headers={
                "Content-Type": "audio/mp4",
                "Content-Range": f"bytes {start}-{end}/{len(PAYLOAD)}",
            },
        )

    async def serve_fixed_range(request):
        state.requests.append(dict(request.headers))
        return web.Response(
            status=206,
            body=b"r" * 100,
            headers={"Content-Type": "audio/webm", "Content-Range": "bytes 100-199/200000"},
        )

    async def serve_slow(request):
        state.requests.append(dict(request.headers))
        resp = web.StreamResponse(status=200, headers={"Content-Type": "audio/webm"})
        await resp.prepare(request)
        try:
            for _ in range(500):
                await resp.write(SLOW_CHUNK)
                await asyncio.sleep(0.02)
            await resp.write_eof()
        except ConnectionError:
            state.slow_closed.set()
        except asyncio.CancelledError:
            # Newer aiohttp cancels the handler when the peer goes away
            state.slow_closed.set()
            raise
        return resp

    async def serve_truncated(request):
        state.requests.append(dict(request.headers))
        resp = web.StreamResponse(status=200, headers={"Content-Type": "audio/mp4", "Content-Length": "1000"})
        await resp.prepare(request)
        await resp.write(b"t" * 10)
        request.transport.close()
        return resp

    async def serve_error(request):
        state.requests.append(dict(request.headers))
        return web.Response(status=500, text="origin broke")

    async def serve_forbidden(request):
        return web.Response(status=403)

    async def serve_empty(request):
        return web.Response(status=204)

    async def serve_blank(request):
        return web.Response(text="<html><body>nothing</body></html>", content_type="text/html")

    async def serve_search(request):
        state.requests.append(dict(request.headers))
        return web.Response(text=SEARCH_HTML, content_type="text/html")

    app.router.add_get("/audio", serve_audio)
    app.router.add_get("/fixed-range", serve_fixed_range)
    app.router.add_get("/slow", serve_slow)
    app.router.add_get("/truncated", serve_truncated)
    app.router.add_get("/error", serve_error)
    app.router.add_get("/forbidden", serve_forbidden)
    app.router.add_get("/empty", serve_empty)
    app.router.add_get("/results", serve_search)
    app.router.add_get("/blank", serve_blank)
    return app


SEARCH_DATA = """{"contents": {"twoColumnSearchResultsRenderer": {"primaryContents": {"sectionListRenderer":
{"contents": [{"itemSectionRenderer": {"contents": [
  {"videoRenderer": {"videoId": "abc123", "title": {"runs": [{"text": "First song"}]},
   "ownerText": {"runs": [{"text": "Some Band"}]},
   "thumbnail": {"thumbnails": [{"url": "http://img/small.jpg"}, {"url": "http://img/large.jpg"}]},
   "lengthText": {"simpleText": "3:45"}}},
  {"adSlotRenderer": {}},
  {"videoRenderer": {"videoId": "def456", "title": {"runs": [{"text": "Second song"}]}}}
]}}]}}}}}"""

SEARCH_HTML = f"<html><script>var ytInitialData = {SEARCH_DATA};</script></html>"


@pytest.fixture(autouse=True)
def relay_config(tmp_path):
    """Fresh configuration for every test, without static files or $PORT."""
    Config.load(None, environ={})
    config = Config()
    config.set("static.dir", str(tmp_path / "no-static"))
    config.set("session.supersede_timeout_s", 2.0)
    yield config
    Config.load(None, environ={})


@pytest.fixture
async def origin(aiohttp_server):
    return await aiohttp_server(make_origin_app())


@pytest.fixture
def origin_state(origin):
    return origin.app[ORIGIN_STATE]


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def extractor(origin):
    return FakeExtractor({
        "abc123": audio_info(str(origin.make_url("/audio"))),
        "fixed": audio_info(str(origin.make_url("/fixed-range"))),
        "slow": audio_info(str(origin.make_url("/slow"))),
        "truncated": audio_info(str(origin.make_url("/truncated"))),
        "broken": audio_info(str(origin.make_url("/error"))),
        "forbidden": audio_info(str(origin.make_url("/forbidden"))),
        "empty": audio_info(str(origin.make_url("/empty"))),
        "unreachable": audio_info("http://127.0.0.1:1/nothing-listens-here"),
        "videoonly": audio_info(str(origin.make_url("/audio")), acodec="none"),
    })


@pytest.fixture
async def client(aiohttp_client, relay_config, extractor, fake_clock):
    app = create_app(relay_config, extractor=extractor, clock=fake_clock)
    return await aiohttp_client(app)
