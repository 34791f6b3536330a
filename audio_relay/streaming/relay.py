# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

import aiohttp
from aiohttp import hdrs, web

from ..media.exceptions import UpstreamError
from ..utils.helpers import format_bytes
from ..utils.metrics import TransferTracker
from .sessions import CancelToken, OperationCancelled


FULL_RANGE = "bytes=0-"


class RelayOutcome(Enum):
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


class InterruptReason(Enum):
    """Why a transfer stopped early. None of these is a server fault."""

    CANCELLED = "cancelled"  # cancel token fired (superseded session)
    CLIENT_DISCONNECTED = "client_disconnected"
    UPSTREAM_CLOSED = "upstream_closed"  # origin closed before the body was complete


@dataclass(frozen=True)
class RelayResult:
    outcome: RelayOutcome
    bytes_sent: int = 0
    reason: InterruptReason | None = None

    @classmethod
    def completed(cls, bytes_sent: int) -> "RelayResult":
        return cls(RelayOutcome.COMPLETED, bytes_sent)

    @classmethod
    def interrupted(cls, reason: InterruptReason, bytes_sent: int) -> "RelayResult":
        return cls(RelayOutcome.INTERRUPTED, bytes_sent, reason)

    @property
    def is_interrupted(self) -> bool:
        return self.outcome is RelayOutcome.INTERRUPTED


class DownstreamSink(ABC):
    """Where relayed bytes go. Headers are committed exactly once, before any body write."""

    @property
    @abstractmethod
    def committed(self) -> bool:
        pass

    @abstractmethod
    async def commit(self, status: int, headers: Mapping[str, str]) -> None:
        """Send status line and headers to the client."""
        pass

    @abstractmethod
    async def write(self, chunk: bytes) -> None:
        pass

    @abstractmethod
    async def finish(self) -> None:
        """Signal end of body."""
        pass

    @abstractmethod
    def abort(self) -> None:
        """Close the client connection without further writes (no-op before commit)."""
        pass


class ResponseSink(DownstreamSink):
    """aiohttp ``StreamResponse`` backed sink."""

    def __init__(self, request: web.Request, extra_headers: Mapping[str, str] | None = None):
        self.request = request
        self.extra_headers = dict(extra_headers or {})
        self.response: web.StreamResponse | None = None

    @property
    def committed(self) -> bool:
        return self.response is not None and self.response.prepared

    async def commit(self, status: int, headers: Mapping[str, str]) -> None:
        if self.response is not None:
            raise RuntimeError("response headers already committed")
        response = web.StreamResponse(status=status)
        response.headers.update(self.extra_headers)
        response.headers.update(headers)
        self.response = response
        await response.prepare(self.request)

    async def write(self, chunk: bytes) -> None:
        if self.response is None:
            raise RuntimeError("write before headers were committed")
        await self.response.write(chunk)

    async def finish(self) -> None:
        if self.response is not None:
            await self.response.write_eof()

    def abort(self) -> None:
        if self.response is None:
            return
        self.response.force_close()
        # Drop the connection now; a clean end-of-body would look like a complete file
        transport = self.request.transport
        if transport is not None:
            transport.close()


def relay_status(range_header: str) -> int:
    """206 for any range other than the whole file, else 200."""
    return 200 if range_header.strip() == FULL_RANGE else 206


class RelayEngine:
    """Pipes an upstream range response to a downstream sink.

    One engine is shared by all requests; per-transfer state lives in the
    ``relay`` call.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        user_agent: str,
        chunk_size: int = 65536,
        default_content_type: str = "audio/mp4",
        cache_control: str | None = None,
        log_metrics: bool = True,
    ):
        self.session = session
        self.user_agent = user_agent
        self.chunk_size = chunk_size
        self.default_content_type = default_content_type
        self.cache_control = cache_control
        self.log_metrics = log_metrics

    async def relay(self, url: str, range_header: str, cancel_token: CancelToken,
                    sink: DownstreamSink) -> RelayResult:
        """Relay ``url`` to ``sink``.

        Returns a ``RelayResult``; interruptions are results, not exceptions.

        Raises:
            UpstreamError: the origin could not be reached, answered with a
                non-2xx status or no body, or failed mid-transfer
        """
        tracker = TransferTracker()
        try:
            result = await cancel_token.run(self._transfer(url, range_header, sink, tracker))
        except OperationCancelled as e:
            logging.getLogger("relay").info(f"transfer cancelled ({e.reason}) after {format_bytes(tracker.bytes_sent)}")
            result = RelayResult.interrupted(InterruptReason.CANCELLED, tracker.bytes_sent)
        finally:
            tracker.finish()

        self._log_result(result, tracker)
        return result

    def upstream_headers(self, range_header: str) -> dict[str, str]:
        return {
            hdrs.RANGE: range_header,
            hdrs.USER_AGENT: self.user_agent,
            # Byte offsets must match the origin's representation
            hdrs.ACCEPT_ENCODING: "identity",
        }

    def downstream_headers(self, upstream: aiohttp.ClientResponse) -> dict[str, str]:
        headers = {
            hdrs.CONTENT_TYPE: upstream.headers.get(hdrs.CONTENT_TYPE) or self.default_content_type,
            hdrs.ACCEPT_RANGES: "bytes",
        }
        for name in (hdrs.CONTENT_LENGTH, hdrs.CONTENT_RANGE):
            value = upstream.headers.get(name)
            if value:
                headers[name] = value
        if self.cache_control:
            headers[hdrs.CACHE_CONTROL] = self.cache_control
        return headers

    async def _transfer(self, url: str, range_header: str, sink: DownstreamSink,
                        tracker: TransferTracker) -> RelayResult:
        try:
            async with self.session.get(url, headers=self.upstream_headers(range_header)) as upstream:
                self._check_upstream(upstream, url)

                try:
                    await sink.commit(relay_status(range_header), self.downstream_headers(upstream))
                except ConnectionError as e:
                    logging.getLogger("relay").info(f"client gone before headers were sent: {e!r}")
                    return RelayResult.interrupted(InterruptReason.CLIENT_DISCONNECTED, 0)

                return await self._pump(upstream, sink, tracker, url)

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logging.getLogger("relay").warning(f"upstream request failed for {url[:80]}: {e!r}")
            raise UpstreamError(f"upstream request failed: {e}", url) from e

    def _check_upstream(self, upstream: aiohttp.ClientResponse, url: str) -> None:
        if not 200 <= upstream.status < 300:
            logging.getLogger("relay").warning(f"upstream returned HTTP {upstream.status} for {url[:80]}")
            raise UpstreamError(f"upstream returned HTTP {upstream.status}", url, error_code=upstream.status)

        if upstream.status in (204, 205) or upstream.content_length == 0:
            logging.getLogger("relay").warning(f"upstream returned no body (HTTP {upstream.status}) for {url[:80]}")
            raise UpstreamError("upstream returned no body", url, error_code=upstream.status)

    async def _pump(self, upstream: aiohttp.ClientResponse, sink: DownstreamSink,
                    tracker: TransferTracker, url: str) -> RelayResult:
        """Copy the body. Called only after headers were committed."""
        try:
            async for chunk in upstream.content.iter_chunked(self.chunk_size):
                try:
                    await sink.write(chunk)
                except ConnectionError as e:
                    logging.getLogger("relay").info(f"client disconnected mid-transfer: {e!r}")
                    return RelayResult.interrupted(InterruptReason.CLIENT_DISCONNECTED, tracker.bytes_sent)
                tracker.record_chunk(len(chunk))

        except (aiohttp.ClientPayloadError, aiohttp.ServerDisconnectedError) as e:
            logging.getLogger("relay").info(f"upstream closed early after {format_bytes(tracker.bytes_sent)}: {e!r}")
            return RelayResult.interrupted(InterruptReason.UPSTREAM_CLOSED, tracker.bytes_sent)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logging.getLogger("relay").error(f"upstream read failed for {url[:80]}: {e!r}")
            raise UpstreamError(f"upstream read failed: {e}", url) from e

        try:
            await sink.finish()
        except ConnectionError as e:
            logging.getLogger("relay").info(f"client disconnected at end of body: {e!r}")
            return RelayResult.interrupted(InterruptReason.CLIENT_DISCONNECTED, tracker.bytes_sent)

        return RelayResult.completed(tracker.bytes_sent)

    def _log_result(self, result: RelayResult, tracker: TransferTracker) -> None:
        if not self.log_metrics:
            return
        m = tracker.get_metrics()
        reason = f" ({result.reason.value})" if result.reason else ""
        ttfb = f"{m['ttfb_ms']:.0f}ms" if m["ttfb_ms"] is not None else "n/a"
        logging.getLogger("relay").info(
            f"relay {result.outcome.value}{reason}: {format_bytes(m['bytes_sent'])} "
            f"in {m['duration_s']:.2f}s ({format_bytes(m['throughput_bps'])}/s, ttfb={ttfb})"
        )
