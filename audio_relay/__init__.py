# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

"""Audio relay: resolve a media id to an upstream audio URL and proxy it with range support."""

__version__ = "1.0.0"
