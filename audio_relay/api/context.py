# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

"""Shared per-application components, stored on the aiohttp app."""

from dataclasses import dataclass
from typing import Any

from aiohttp import web

from ..media.cache import ResolvedStream, TTLCache
from ..media.search import SearchClient
from ..media.sources import StreamResolver
from ..streaming.keys import SessionKeyStrategy
from ..streaming.relay import RelayEngine
from ..streaming.sessions import SessionRegistry


@dataclass
class RelayServices:
    """Everything request handlers share.

    ``relay`` and ``search`` need a running loop and are filled in
    when the application starts.
    """

    stream_cache: TTLCache[ResolvedStream]
    search_cache: TTLCache[list[dict[str, Any]]]
    resolver: StreamResolver
    sessions: SessionRegistry
    key_strategy: type[SessionKeyStrategy]
    relay: RelayEngine | None = None
    search: SearchClient | None = None

    def session_key(self, request: web.Request) -> str:
        return self.key_strategy.get_session_key(request)


SERVICES = web.AppKey("services", RelayServices)
