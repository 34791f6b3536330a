# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

"""Streaming module for audio-relay.

This module handles the per-client side of relaying:
- Cancellation tokens and the one-session-per-client registry
- Session key strategies
- The upstream-to-downstream relay engine
"""

from .keys import SessionKeyRegistry, SessionKeyStrategy
from .relay import InterruptReason, RelayEngine, RelayOutcome, RelayResult, ResponseSink
from .sessions import CancelToken, ClientSession, OperationCancelled, SessionRegistry


__all__ = [
    "CancelToken",
    "ClientSession",
    "InterruptReason",
    "OperationCancelled",
    "RelayEngine",
    "RelayOutcome",
    "RelayResult",
    "ResponseSink",
    "SessionKeyRegistry",
    "SessionKeyStrategy",
    "SessionRegistry",
]
