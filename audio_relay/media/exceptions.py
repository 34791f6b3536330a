# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

"""Relay-layer exceptions for clean abstraction from library-specific errors.

These exceptions give the request handler a single taxonomy to map onto HTTP
status codes, without exposing yt-dlp or aiohttp exception types to upper
layers.

Design Pattern:
    All diagnostic information (URLs, status codes, etc.) should be logged
    immediately before raising exceptions. The exception attributes provide
    structured data for status mapping, not for logging.

Interrupted transfers (client gone, upstream closed early, superseded session)
are not exceptions; see ``RelayResult`` in ``streaming.relay``.
"""


class RelayError(Exception):
    """Base exception for audio relay errors.

    Attributes:
        source_url: URL or identifier that caused the error
        error_code: Numeric error code (e.g., HTTP status from upstream)
        http_status: Status returned to the client for this error
    """

    http_status = 500

    def __init__(
        self,
        message: str,
        source_url: str | None = None,
        error_code: int | None = None,
    ):
        """Initialize relay error.

        Args:
            message: Human-readable error description
            source_url: URL or media identifier
            error_code: Numeric error code (HTTP status, errno, etc.)
        """
        super().__init__(message)
        self.source_url = source_url
        self.error_code = error_code


class ValidationError(RelayError):
    """The client sent an unusable request (e.g. missing media identifier)."""

    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)


class ResolutionError(RelayError):
    """Base for failures resolving a media identifier to a stream URL."""


class StreamNotFoundError(ResolutionError):
    """No audio-capable candidate was found for the identifier.

    Raised for:
    - Resolver returned no formats
    - No format exposes an audio codec and a URL
    """

    http_status = 404


class ResolutionFailedError(ResolutionError):
    """The external resolver itself failed.

    Raised for:
    - yt-dlp DownloadError (extractor failure, geo block, removed video)
    - Any unexpected exception inside the resolver call
    """

    http_status = 500


class UpstreamError(RelayError):
    """Network/HTTP errors talking to the upstream origin.

    Raised for:
    - Connection failures
    - Non-2xx upstream status
    - Upstream response without a body
    - I/O errors mid-transfer that are not a premature close
    """

    http_status = 502
