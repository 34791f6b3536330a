# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

"""Media resolution: caches, the stream resolver and the search scraper."""

# Relay-layer exceptions (clean abstraction from library-specific errors)
from .exceptions import (
    RelayError,
    ResolutionError,
    ResolutionFailedError,
    StreamNotFoundError,
    UpstreamError,
    ValidationError,
)
from .cache import CacheEntry, ResolvedStream, TTLCache
from .search import SearchClient
from .sources import InfoExtractor, StreamResolver, YtDlpExtractor, select_audio_candidate


__all__ = [
    "CacheEntry",
    "InfoExtractor",
    "RelayError",
    "ResolutionError",
    "ResolutionFailedError",
    "ResolvedStream",
    "SearchClient",
    "StreamNotFoundError",
    "StreamResolver",
    "TTLCache",
    "UpstreamError",
    "ValidationError",
    "YtDlpExtractor",
    "select_audio_candidate",
]
