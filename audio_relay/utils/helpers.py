# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

from urllib.parse import urlencode, urlparse


YOUTUBE_WATCH_URL = "https://www.youtube.com/watch"


def is_http_url(url: str) -> bool:
    """Check if a URL is HTTP/HTTPS."""
    try:
        s = (urlparse(url).scheme or "").lower()
        return s in ("http", "https")
    except ValueError:
        return False


def media_url_for(media_id: str) -> str:
    """Expand a bare media identifier into a watch-page URL.

    Full http(s) URLs are passed through unchanged.
    """
    if is_http_url(media_id):
        return media_id
    return f"{YOUTUBE_WATCH_URL}?{urlencode({'v': media_id})}"


def header_lines_to_dict(lines: list[str]) -> dict[str, str]:
    """Convert ``"Name:value"`` header lines into a dict, skipping malformed ones."""
    headers = {}
    for line in lines:
        if ":" not in line:
            continue
        k, v = line.split(":", 1)
        k = k.strip()
        v = v.strip()
        if k and v:
            headers[k] = v
    return headers


def format_bytes(n: float) -> str:
    """Human-readable byte count (e.g. '3.2MB')."""
    for unit in ("B", "KB", "MB"):
        if abs(n) < 1024:
            return f"{n:.1f}{unit}" if unit != "B" else f"{int(n)}B"
        n /= 1024
    return f"{n:.1f}GB"
