# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import logging
from collections.abc import AsyncIterator
from pathlib import Path

import aiohttp
from aiohttp import hdrs, web
from aiohttp.web_urldispatcher import StaticResource

from ..config import Config
from ..media.cache import Clock, TTLCache
from ..media.search import SearchClient
from ..media.sources import InfoExtractor, StreamResolver
from ..streaming.keys import SessionKeyRegistry
from ..streaming.relay import RelayEngine
from ..streaming.sessions import SessionRegistry
from .audio import handle_audio_request
from .context import SERVICES, RelayServices
from .search import handle_search_request


STATIC_CACHE_CONTROL = "public, max-age=3600"


async def health_check_handler(request):
    """Simple health check endpoint."""
    services = request.app[SERVICES]
    return web.json_response({
        "status": "ok",
        "service": "audio-relay",
        "active_sessions": len(services.sessions),
        "cached_streams": len(services.stream_cache),
    })


async def add_cors_headers(request: web.Request, response: web.StreamResponse) -> None:
    """Allow any origin to GET from this service."""
    response.headers.setdefault("Access-Control-Allow-Origin", "*")
    response.headers.setdefault("Access-Control-Allow-Methods", "GET")


def build_services(config: Config, extractor: InfoExtractor | None = None,
                   clock: Clock | None = None) -> RelayServices:
    """Create the components that do not need a running event loop."""
    cache_kwargs = {"clock": clock} if clock is not None else {}
    stream_cache = TTLCache(ttl_s=float(config.get("cache.stream_ttl_s")), **cache_kwargs)
    search_cache = TTLCache(ttl_s=float(config.get("cache.search_ttl_s")), **cache_kwargs)

    return RelayServices(
        stream_cache=stream_cache,
        search_cache=search_cache,
        resolver=StreamResolver(stream_cache, extractor, user_agent=config.get("relay.user_agent")),
        sessions=SessionRegistry(supersede_timeout_s=float(config.get("session.supersede_timeout_s"))),
        key_strategy=SessionKeyRegistry.get(config.get("session.key")),
    )


async def upstream_client_ctx(app: web.Application) -> AsyncIterator[None]:
    """Own the shared upstream HTTP client for the lifetime of the app."""
    config = Config()
    services = app[SERVICES]
    user_agent = config.get("relay.user_agent")

    timeout = aiohttp.ClientTimeout(
        total=None,
        sock_connect=float(config.get("relay.connect_timeout_s")),
        sock_read=float(config.get("relay.read_timeout_s")),
    )

    async with aiohttp.ClientSession(timeout=timeout) as http:
        services.relay = RelayEngine(
            http,
            user_agent=user_agent,
            chunk_size=int(config.get("relay.chunk_size")),
            default_content_type=config.get("relay.default_content_type"),
            cache_control=config.get("relay.cache_control"),
            log_metrics=bool(config.get("log.metrics")),
        )
        services.search = SearchClient(
            http,
            services.search_cache,
            user_agent=user_agent,
            max_results=int(config.get("search.max_results")),
            search_url=config.get("search.url"),
        )
        yield
        services.relay = None
        services.search = None


async def add_static_cache_headers(request: web.Request, response: web.StreamResponse) -> None:
    """Give files served from the static directory the same cache lifetime as the index."""
    route = request.match_info.route
    if isinstance(route.resource, StaticResource) and response.status < 400:
        response.headers.setdefault(hdrs.CACHE_CONTROL, STATIC_CACHE_CONTROL)


def add_static_routes(app: web.Application, static_dir: str) -> None:
    """Serve the front end from ``static_dir`` if it exists."""
    root = Path(static_dir)
    if not root.is_dir():
        logging.getLogger("server").info(f"static dir {static_dir!r} not found, not serving static files")
        return

    index = root / "index.html"

    async def index_handler(request):
        if not index.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(index, headers={hdrs.CACHE_CONTROL: STATIC_CACHE_CONTROL})

    app.router.add_get("/", index_handler)
    # Registered last so API routes win
    app.router.add_static("/", root, append_version=False)
    app.on_response_prepare.append(add_static_cache_headers)


def create_app(config: Config | None = None, extractor: InfoExtractor | None = None,
               clock: Clock | None = None) -> web.Application:
    """Create and configure the HTTP application."""
    config = config or Config()
    app = web.Application()
    app[SERVICES] = build_services(config, extractor, clock)
    app.cleanup_ctx.append(upstream_client_ctx)
    app.on_response_prepare.append(add_cors_headers)

    app.router.add_get("/api/audio", handle_audio_request)
    app.router.add_get("/api/search", handle_search_request)
    app.router.add_get("/api/system/health", health_check_handler)

    add_static_routes(app, config.get("static.dir"))

    return app


async def start_server(host: str = "0.0.0.0", port: int = 3000, app: web.Application | None = None) -> web.AppRunner:
    """Start the HTTP server. Returns the runner so callers can clean it up."""
    app = app or create_app()

    # Cancel the handler (and with it the upstream fetch) when a client disconnects
    runner = web.AppRunner(app, handler_cancellation=True)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logging.getLogger("server").info(f"Server on http://{host}:{port}/ (audio: /api/audio, search: /api/search)")

    return runner
