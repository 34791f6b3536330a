# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import yt_dlp

from ..config import Config
from ..streaming.sessions import CancelToken
from ..utils.helpers import format_bytes, header_lines_to_dict, media_url_for
from .cache import ResolvedStream, TTLCache
from .exceptions import ResolutionFailedError, StreamNotFoundError


REQUEST_HEADER_LINES = [
    "Accept-Language:en-US,en;q=0.9",
    "Referer:https://www.youtube.com/",
]


def build_yt_dlp_options(user_agent: str) -> dict[str, Any]:
    """Build the yt-dlp option set used for every resolution."""
    headers = header_lines_to_dict(REQUEST_HEADER_LINES)
    headers["User-Agent"] = user_agent

    return {
        "quiet": True,
        "no_warnings": True,
        "noprogress": True,
        "nocheckcertificate": True,
        "prefer_free_formats": True,
        "youtube_include_dash_manifest": False,
        # select_audio_candidate picks the format; items without formats must reach it
        "ignore_no_formats_error": True,
        "http_headers": headers,
    }


class InfoExtractor(ABC):
    """External resolver: turns an identifier or URL into an info dict.

    The info dict carries ``formats`` (each with ``url``, ``acodec`` and
    optionally ``filesize``/``filesize_approx``) and, for playlists, ``entries``.
    Implementations are blocking; the resolver calls them from a worker thread.
    """

    @abstractmethod
    def extract(self, target: str, options: dict[str, Any]) -> dict[str, Any] | None:
        pass


class YtDlpExtractor(InfoExtractor):
    """yt-dlp backed extractor."""

    def extract(self, target: str, options: dict[str, Any]) -> dict[str, Any] | None:
        with yt_dlp.YoutubeDL(options) as ydl:  # type: ignore[arg-type]
            info = ydl.extract_info(target, download=False)
            return ydl.sanitize_info(info) if info is not None else None


def size_hint(fmt: dict[str, Any]) -> int:
    """Best available size estimate for a format (0 if unknown)."""
    return int(fmt.get("filesize") or fmt.get("filesize_approx") or 0)


def has_audio(fmt: dict[str, Any]) -> bool:
    acodec = fmt.get("acodec")
    return bool(acodec) and acodec != "none"


def select_audio_candidate(formats: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Pick the audio-capable format with the largest size hint.

    Formats without a URL or without an audio codec are ignored. Ties keep the
    first format in resolver order.
    """
    best = None
    for fmt in formats:
        if not fmt.get("url") or not has_audio(fmt):
            continue
        if best is None or size_hint(fmt) > size_hint(best):
            best = fmt
    return best


class StreamResolver:
    """Resolves media identifiers to playable audio URLs, with caching.

    Concurrent misses for the same identifier share one extractor call.
    """

    def __init__(self, cache: TTLCache[ResolvedStream], extractor: InfoExtractor | None = None,
                 user_agent: str | None = None):
        self.cache = cache
        self.extractor = extractor or YtDlpExtractor()
        self.user_agent = user_agent or Config().get("relay.user_agent")
        self._inflight: dict[str, asyncio.Task] = {}

    async def resolve(self, media_id: str, cancel_token: CancelToken | None = None) -> tuple[ResolvedStream, bool]:
        """Resolve ``media_id``, returning ``(stream, cache_hit)``.

        Raises:
            StreamNotFoundError: no audio-capable candidate
            ResolutionFailedError: the extractor failed
            OperationCancelled: ``cancel_token`` was cancelled while waiting
        """
        cached = self.cache.get(media_id)
        if cached is not None:
            logging.getLogger("resolver").debug(f"cache hit for {media_id}")
            return cached, True

        task = self._inflight.get(media_id)
        if task is None:
            logging.getLogger("resolver").info(f"cache miss for {media_id}, resolving")
            task = asyncio.create_task(self._resolve_uncached(media_id))
            self._inflight[media_id] = task
            task.add_done_callback(lambda t: self._forget(media_id, t))
        else:
            logging.getLogger("resolver").debug(f"joining in-flight resolution for {media_id}")

        if cancel_token is not None:
            stream = await cancel_token.run(self._wait_shared(task))
        else:
            stream = await self._wait_shared(task)
        return stream, False

    @staticmethod
    async def _wait_shared(task: asyncio.Task) -> ResolvedStream:
        # A cancelled waiter must not cancel the resolution other waiters share.
        return await asyncio.shield(task)

    def _forget(self, media_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(media_id) is task:
            self._inflight.pop(media_id, None)
        if not task.cancelled() and task.exception() is not None:
            # Retrieved here so an unawaited failure is not reported as "never retrieved".
            logging.getLogger("resolver").debug(f"resolution for {media_id} failed: {task.exception()!r}")

    async def _resolve_uncached(self, media_id: str) -> ResolvedStream:
        target = media_url_for(media_id)
        options = build_yt_dlp_options(self.user_agent)

        # Run the blocking extractor in a thread pool
        loop = asyncio.get_running_loop()
        try:
            info = await loop.run_in_executor(None, self.extractor.extract, target, options)
        except yt_dlp.DownloadError as e:
            logging.getLogger("resolver").warning(f"resolution failed for {media_id}: {e}")
            raise ResolutionFailedError(f"resolver failed: {e}", media_id) from e
        except Exception as e:
            logging.getLogger("resolver").error(f"resolver crashed for {media_id}: {e!r}", exc_info=True)
            raise ResolutionFailedError(f"resolver error: {e}", media_id) from e

        if not info:
            logging.getLogger("resolver").warning(f"resolver returned nothing for {media_id}")
            raise StreamNotFoundError("resolver returned no info", media_id)

        if info.get("entries"):
            info = info["entries"][0] or {}

        formats = info.get("formats") or []
        candidate = select_audio_candidate(formats)
        if candidate is None:
            logging.getLogger("resolver").warning(
                f"no audio candidate for {media_id} among {len(formats)} formats"
            )
            raise StreamNotFoundError("no audio-capable format", media_id)

        filesize = size_hint(candidate)
        size_str = format_bytes(filesize) if filesize else "?"
        logging.getLogger("resolver").info(
            f"selected format {candidate.get('format_id', 'unknown')} for {media_id}: "
            f"{candidate.get('acodec')} ~{size_str}"
        )

        stream = ResolvedStream(
            url=candidate["url"],
            resolved_at=self.cache.now(),
            format_id=candidate.get("format_id"),
        )
        self.cache.put(media_id, stream)
        return stream

