# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import logging
from abc import ABC, abstractmethod
from typing import ClassVar

from aiohttp import web


class SessionKeyStrategy(ABC):
    """Derives the session key that groups requests belonging to one client.

    Every strategy is a heuristic: clients behind a shared NAT or proxy collide,
    and a reconnecting client may get a new key.
    """

    name: ClassVar[str]

    @staticmethod
    @abstractmethod
    def get_session_key(request: web.Request) -> str:
        """Generate a session key for the given request."""
        pass


class RemoteAddressKey(SessionKeyStrategy):
    """Key on the peer address of the TCP connection."""

    name = "remote"

    @staticmethod
    def get_session_key(request: web.Request) -> str:
        return request.remote or "unknown"


class ForwardedForKey(SessionKeyStrategy):
    """Key on the first X-Forwarded-For hop, for deployments behind a reverse proxy.

    Falls back to the peer address when the header is missing.
    """

    name = "forwarded"

    @staticmethod
    def get_session_key(request: web.Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
        return RemoteAddressKey.get_session_key(request)


class SessionKeyRegistry:
    """Registry of session key strategies, looked up by config name."""

    _strategies: ClassVar[dict[str, type[SessionKeyStrategy]]] = {
        RemoteAddressKey.name: RemoteAddressKey,
        ForwardedForKey.name: ForwardedForKey,
    }

    @classmethod
    def get(cls, name: str) -> type[SessionKeyStrategy]:
        """Find the strategy registered under ``name`` (default: remote address)."""
        strategy = cls._strategies.get(name)
        if strategy is None:
            logging.getLogger("sessions").warning(f"unknown session key strategy {name!r}, using 'remote'")
            return RemoteAddressKey
        return strategy
