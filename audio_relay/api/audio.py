# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import logging

from aiohttp import hdrs, web

from ..media.exceptions import ResolutionError, UpstreamError, ValidationError
from ..streaming.relay import FULL_RANGE, ResponseSink
from ..streaming.sessions import CancelToken, OperationCancelled
from .context import SERVICES


# nginx convention for "client closed request"; never reaches a live client
CLIENT_CLOSED_STATUS = 499


def _connection_gone() -> web.Response:
    response = web.Response(status=CLIENT_CLOSED_STATUS)
    response.force_close()
    return response


def parse_media_id(request: web.Request) -> str:
    media_id = request.query.get("v", "").strip()
    if not media_id:
        raise ValidationError("missing media id (?v=)")
    return media_id


async def handle_audio_request(request: web.Request) -> web.StreamResponse:
    """Handle GET /api/audio?v=<id>: resolve the id and relay its audio stream.

    START -> CANCEL_PRIOR -> RESOLVE -> RELAY -> DONE | FAILED. The client's
    session registration is released on every exit path.
    """
    logger = logging.getLogger("audio")
    services = request.app[SERVICES]

    try:
        media_id = parse_media_id(request)
    except ValidationError as e:
        logger.debug(f"rejecting request from {request.remote}: {e}")
        return web.Response(status=e.http_status)

    range_header = request.headers.get(hdrs.RANGE) or FULL_RANGE
    client_key = services.session_key(request)
    token = CancelToken(label=f"{client_key}/{media_id}")
    sink: ResponseSink | None = None

    logger.info(f"audio {media_id} range={range_header} client={client_key}")

    try:
        await services.sessions.supersede(client_key)
        # Registered before resolving so a newer request can cancel this one while it waits
        await services.sessions.register(client_key, token)

        try:
            stream, cache_hit = await services.resolver.resolve(media_id, token)
        except ResolutionError as e:
            logger.warning(f"cannot resolve {media_id}: {e}")
            return web.Response(status=e.http_status)

        sink = ResponseSink(request, {"X-Cache-Status": "HIT" if cache_hit else "MISS"})
        try:
            result = await services.relay.relay(stream.url, range_header, token, sink)
        except UpstreamError as e:
            origin = (e.source_url or "?")[:80]
            if sink.committed:
                # Status already sent; all we can do is drop the connection
                logger.error(f"relay of {media_id} from {origin} failed mid-transfer: {e}")
                sink.abort()
                return sink.response
            upstream_status = f" (upstream HTTP {e.error_code})" if e.error_code else ""
            logger.warning(f"relay of {media_id} from {origin} failed: {e}{upstream_status}")
            return web.Response(status=e.http_status)

        if result.is_interrupted:
            logger.info(f"relay of {media_id} for {client_key} interrupted: {result.reason.value}")
            sink.abort()
            if sink.response is None:
                return _connection_gone()
        return sink.response

    except OperationCancelled as e:
        logger.info(f"request for {media_id} from {client_key} cancelled: {e.reason}")
        if sink is not None and sink.response is not None:
            sink.abort()
            return sink.response
        return _connection_gone()
    except Exception as e:
        logger.error(f"Error relaying {media_id}: {e}", exc_info=True)
        if sink is not None and sink.committed:
            sink.abort()
            return sink.response
        return web.Response(status=500)
    finally:
        await services.sessions.release(client_key, token)
