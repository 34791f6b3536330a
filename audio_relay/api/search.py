# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import asyncio
import logging

import aiohttp
from aiohttp import web

from .context import SERVICES


async def handle_search_request(request: web.Request) -> web.Response:
    """Handle GET /api/search?q=<text>. Always answers with a JSON list."""
    services = request.app[SERVICES]
    query = request.query.get("q", "")

    try:
        results = await services.search.search(query)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logging.getLogger("search").error(f"search for {query!r} failed: {e!r}")
        results = []

    return web.json_response(results)
