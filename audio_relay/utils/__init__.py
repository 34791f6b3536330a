# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

"""Utility modules for metrics and helpers."""

from .helpers import format_bytes, is_http_url, media_url_for
from .metrics import TransferTracker


__all__ = [
    # Metrics
    "TransferTracker",
    # Helpers
    "format_bytes",
    "is_http_url",
    "media_url_for",
]
