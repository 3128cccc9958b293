"""Profile analysis handler: fetch a public profile page and summarize it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

import httpx
import trafilatura

from outreach_queue.config import ProfileAnalysisSettings
from outreach_queue.tasks.registry import JobContext

logger = logging.getLogger(__name__)

PROFILE_ANALYSIS_TASK_TYPE = "profile_analysis"


class ProfileFetchError(RuntimeError):
    """Profile page could not be fetched."""


class ProfileAnalysisHandler:
    """Fetches ``payload['url']`` and extracts profile metadata and a text excerpt."""

    def __init__(
        self,
        *,
        settings: ProfileAnalysisSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or ProfileAnalysisSettings()
        self._transport = transport

    async def __call__(self, payload: Mapping[str, Any], context: JobContext) -> dict[str, Any]:
        url = _require_url(payload)
        target_id = payload.get("target_id")
        logger.info("Analyzing profile for job %s: %s", context.job_id, url)

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.request_timeout_seconds, connect=10.0),
            headers={"User-Agent": self.settings.user_agent},
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(url)
            except httpx.TimeoutException as error:
                raise ProfileFetchError(f"Page load timed out: {url}") from error
            except httpx.HTTPError as error:
                raise ProfileFetchError(f"HTTP error fetching {url}: {error}") from error

        if not response.is_success:
            raise ProfileFetchError(f"HTTP {response.status_code} fetching {url}")

        final_url = str(response.url)
        summary = await asyncio.to_thread(
            analyze_profile_html,
            response.text,
            url=final_url,
            excerpt_chars=self.settings.excerpt_chars,
        )
        return {
            "target_id": target_id,
            "url": url,
            "final_url": final_url,
            "status_code": response.status_code,
            **summary,
        }


def analyze_profile_html(html: str, *, url: str, excerpt_chars: int) -> dict[str, Any]:
    """Extract title/description/author/site name and a text excerpt from a page."""

    metadata = None
    try:
        metadata = trafilatura.extract_metadata(html, default_url=url)
    except Exception as exc:  # noqa: BLE001
        logger.warning("trafilatura.extract_metadata failed for %s: %s", url, exc)

    try:
        text = trafilatura.extract(html, url=url, favor_precision=True, include_comments=False)
    except Exception as exc:  # noqa: BLE001
        logger.warning("trafilatura.extract failed for %s: %s", url, exc)
        text = None

    excerpt = (text or "").strip()
    if excerpt_chars > 0 and len(excerpt) > excerpt_chars:
        excerpt = excerpt[:excerpt_chars].rstrip()

    return {
        "title": getattr(metadata, "title", None),
        "description": getattr(metadata, "description", None),
        "author": getattr(metadata, "author", None),
        "site_name": getattr(metadata, "sitename", None),
        "excerpt": excerpt,
    }


def _require_url(payload: Mapping[str, Any]) -> str:
    url = str(payload.get("url") or "").strip()
    if not url:
        raise ValueError("profile_analysis payload requires a 'url'.")
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"Invalid profile URL: {url!r}. Expected an absolute http(s) URL.")
    return url
