# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import json
import logging
import re
from typing import Any

import aiohttp

from .cache import TTLCache


SEARCH_URL = "https://www.youtube.com/results"

INITIAL_DATA_RE = re.compile(r"var ytInitialData = (.*?);</script>", re.DOTALL)


def _first_run_text(node: dict[str, Any] | None) -> str:
    runs = (node or {}).get("runs") or []
    return (runs[0].get("text") or "") if runs else ""


def extract_initial_data(html: str) -> dict[str, Any] | None:
    """Pull the embedded ``ytInitialData`` JSON out of a results page."""
    match = INITIAL_DATA_RE.search(html)
    if not match:
        return None
    return json.loads(match.group(1))


def parse_search_results(data: dict[str, Any], max_results: int = 10) -> list[dict[str, str]]:
    """Flatten ``ytInitialData`` into ``{videoId, title, author, thumb, duration}`` dicts."""
    sections = (
        data.get("contents", {})
        .get("twoColumnSearchResultsRenderer", {})
        .get("primaryContents", {})
        .get("sectionListRenderer", {})
        .get("contents")
        or []
    )
    items = (sections[0].get("itemSectionRenderer", {}).get("contents") or []) if sections else []

    results = []
    for item in items:
        video = item.get("videoRenderer")
        if not video or not video.get("videoId"):
            continue

        thumbnails = (video.get("thumbnail") or {}).get("thumbnails") or []
        results.append({
            "videoId": video["videoId"],
            "title": _first_run_text(video.get("title")),
            "author": _first_run_text(video.get("ownerText")),
            "thumb": thumbnails[-1].get("url", "") if thumbnails else "",
            "duration": (video.get("lengthText") or {}).get("simpleText", ""),
        })

        if len(results) >= max_results:
            break

    return results


class SearchClient:
    """Scrapes the upstream search results page, with a short-lived cache."""

    def __init__(self, session: aiohttp.ClientSession, cache: TTLCache[list[dict[str, str]]],
                 user_agent: str, max_results: int = 10, search_url: str = SEARCH_URL):
        self.session = session
        self.cache = cache
        self.user_agent = user_agent
        self.max_results = max_results
        self.search_url = search_url

    async def search(self, query: str) -> list[dict[str, str]]:
        """Search for ``query``.

        Raises:
            aiohttp.ClientError: fetching the results page failed
            ValueError: the embedded JSON could not be decoded
        """
        query = query.strip()
        if not query:
            return []

        cached = self.cache.get(query)
        if cached is not None:
            logging.getLogger("search").debug(f"cache hit for {query!r}")
            return cached

        async with self.session.get(
            self.search_url,
            params={"search_query": query},
            headers={"User-Agent": self.user_agent},
        ) as resp:
            resp.raise_for_status()
            html = await resp.text()

        data = extract_initial_data(html)
        if data is None:
            logging.getLogger("search").warning(f"no ytInitialData in results page for {query!r}")
            return []

        results = parse_search_results(data, self.max_results)
        logging.getLogger("search").info(f"search {query!r}: {len(results)} results")
        self.cache.put(query, results)
        return results
