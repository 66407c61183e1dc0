"""Client for the Firecrawl hosted extraction API.

``POST /extract`` either answers inline or hands back a job id. Jobs are
polled on a fixed interval for a bounded number of attempts; running out of
attempts fails that single extraction with :class:`ExtractionTimeout`.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_attempt, wait_fixed

from . import config
from .campaign import LandingPageRecord
from .errors import ExtractionError, ExtractionTimeout

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"completed", "failed"}

EXTRACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "page_title": {"type": "string", "description": "The page title"},
        "meta_description": {"type": "string", "description": "The meta description"},
        "summary": {
            "type": "string",
            "description": "A summary of the key value propositions and benefits",
        },
    },
    "required": ["page_title", "meta_description", "summary"],
}


def _job_running(payload: dict[str, Any]) -> bool:
    return payload.get("status") not in TERMINAL_STATUSES and not payload.get("error")


class FirecrawlClient:
    """Async Firecrawl client; one HTTP connection pool per ``async with`` block."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        poll_interval: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
        request_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ExtractionError("A Firecrawl API key is required")
        self.api_key = api_key
        self.base_url = (base_url or config.firecrawl_api_base()).rstrip("/")
        self.poll_interval = config.firecrawl_poll_interval() if poll_interval is None else poll_interval
        self.max_poll_attempts = max_poll_attempts or config.firecrawl_max_poll_attempts()
        self.request_timeout = request_timeout or config.firecrawl_request_timeout()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "FirecrawlClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.request_timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise ExtractionError("FirecrawlClient must be used as an async context manager")
        return self._client

    @staticmethod
    def _decode(response: httpx.Response, context: str) -> dict[str, Any]:
        if response.status_code >= 400:
            raise ExtractionError(f"Firecrawl {context} error ({response.status_code}): {response.text}")
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise ExtractionError(f"Failed to parse Firecrawl {context} response: {response.text}") from exc
        if not isinstance(payload, dict):
            raise ExtractionError(f"Unexpected Firecrawl {context} response: {response.text}")
        return payload

    async def _get_job(self, job_id: str) -> dict[str, Any]:
        try:
            response = await self._http().get(f"/extract/{job_id}")
        except httpx.HTTPError as exc:
            raise ExtractionError(f"Firecrawl polling request failed: {exc}") from exc
        payload = self._decode(response, "polling")
        logger.debug("Firecrawl job %s status: %s", job_id, payload.get("status") or "processing")
        return payload

    async def poll(self, job_id: str) -> dict[str, Any]:
        """Poll ``job_id`` until it completes, fails or attempts run out."""

        start = time.perf_counter()
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_poll_attempts),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(_job_running),
        )
        payload: dict[str, Any] = {}
        try:
            async for attempt in retrying:
                with attempt:
                    payload = await self._get_job(job_id)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(payload)
        except RetryError as exc:
            raise ExtractionTimeout(
                f"Firecrawl extraction timed out after {self.max_poll_attempts} poll attempts "
                f"({time.perf_counter() - start:.0f}s)"
            ) from exc

        if payload.get("status") == "failed" or payload.get("error"):
            raise ExtractionError(f"Firecrawl extraction failed: {payload.get('error') or 'Unknown error'}")
        logger.info("Firecrawl job %s completed in %.2fs", job_id, time.perf_counter() - start)
        return payload

    async def extract(self, url: str, prompt: str) -> LandingPageRecord:
        body = {"urls": [url], "prompt": prompt, "schema": EXTRACTION_SCHEMA}
        try:
            response = await self._http().post("/extract", json=body)
        except httpx.HTTPError as exc:
            raise ExtractionError(f"Firecrawl request failed: {exc}") from exc
        payload = self._decode(response, "API")

        if payload.get("id") and payload.get("success") and not payload.get("data"):
            logger.info("Firecrawl returned job %s for %s; polling", payload["id"], url)
            payload = await self.poll(str(payload["id"]))

        data = payload.get("data")
        if not isinstance(data, dict):
            raise ExtractionError(f"No extraction data returned for {url}")

        return LandingPageRecord(
            url=url,
            title=data.get("page_title") or "No title found",
            meta_description=data.get("meta_description") or "No meta description found",
            summary=data.get("summary") or "No summary found",
        )
