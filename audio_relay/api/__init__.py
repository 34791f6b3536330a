# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

"""HTTP endpoints and application setup."""

from .server import create_app, start_server


__all__ = ["create_app", "start_server"]
