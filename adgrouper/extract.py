"""Landing page extraction: URL in, :class:`LandingPageRecord` out.

Two interchangeable backends are supported. :class:`FirecrawlBackend` hands
the URL and a JSON schema to the hosted crawl service; :class:`ScrapeSummarizeBackend`
renders the page in a local headless browser and asks the configured LLM for
the summary. Backends are async context managers so the browser or HTTP pool
is opened once per batch and always released.

Batches are processed strictly one URL at a time, in input order, to keep
load on the crawl service predictable. A failing URL becomes a placeholder
record instead of aborting the batch.
"""
from __future__ import annotations

import logging
import time
from contextlib import aclosing
from typing import AsyncIterator, Callable, Optional, Sequence

from . import providers
from .campaign import LandingPageRecord
from .errors import ExtractionError, ProviderError
from .firecrawl import FirecrawlClient
from .prompts import page_summary_prompt
from .schemas import ExtractionProgress, Provider
from .scrape import BrowserScraper, truncate_text

logger = logging.getLogger(__name__)

EXTRACTION_ERROR_TEXT = "Error extracting page"
EMPTY_PAGE_SUMMARY = "No content available to summarize"


class ExtractionBackend:
    """Interface for extraction backends."""

    name = "base"

    async def __aenter__(self) -> "ExtractionBackend":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def extract(self, url: str, provider: Optional[Provider], prompt: str) -> LandingPageRecord:
        raise NotImplementedError


class FirecrawlBackend(ExtractionBackend):
    name = "firecrawl"

    def __init__(self, api_key: str, **client_options) -> None:
        self.client = FirecrawlClient(api_key, **client_options)

    async def __aenter__(self) -> "FirecrawlBackend":
        await self.client.__aenter__()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.client.__aexit__(*exc_info)

    async def extract(self, url: str, provider: Optional[Provider], prompt: str) -> LandingPageRecord:
        return await self.client.extract(url, prompt)


class ScrapeSummarizeBackend(ExtractionBackend):
    name = "scrape"

    def __init__(self, scraper: Optional[BrowserScraper] = None) -> None:
        self.scraper = scraper or BrowserScraper()

    async def __aenter__(self) -> "ScrapeSummarizeBackend":
        await self.scraper.__aenter__()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.scraper.__aexit__(*exc_info)

    async def extract(self, url: str, provider: Optional[Provider], prompt: str) -> LandingPageRecord:
        if provider is None:
            raise ExtractionError("The scrape backend needs an AI provider to summarise pages")

        page = await self.scraper.scrape(url)
        logger.info("Scraped %s (title=%r, %d chars)", url, page.title, len(page.text))
        if not page.text:
            logger.warning("No content found on %s; using fallback summary", url)
            summary = EMPTY_PAGE_SUMMARY
        else:
            llm_prompt = page_summary_prompt(prompt, truncate_text(page.text))
            try:
                summary = await providers.call_text(provider, llm_prompt)
            except ProviderError as exc:
                logger.error("LLM summary extraction failed for %s: %s", url, exc)
                summary = f"Summary extraction failed: {exc}"

        return LandingPageRecord(
            url=url,
            title=page.title,
            meta_description=page.meta_description,
            summary=summary.strip() or "No summary generated",
        )


def placeholder_record(url: str, error: BaseException) -> LandingPageRecord:
    return LandingPageRecord(
        url=url,
        title=EXTRACTION_ERROR_TEXT,
        meta_description=EXTRACTION_ERROR_TEXT,
        summary=f"Failed to extract: {str(error) or type(error).__name__}",
    )


async def extract_one(
    url: str,
    provider: Optional[Provider],
    extraction_prompt: str,
    backend: ExtractionBackend,
) -> LandingPageRecord:
    """Extract a single URL with an already-opened backend; errors propagate."""

    start = time.perf_counter()
    record = await backend.extract(url, provider, extraction_prompt)
    logger.info("Extracted %s via %s in %.2fs", url, backend.name, time.perf_counter() - start)
    return record


async def iter_extract(
    urls: Sequence[str],
    provider: Optional[Provider],
    extraction_prompt: str,
    backend: ExtractionBackend,
) -> AsyncIterator[ExtractionProgress]:
    """Yield one progress event per URL, in order, after that URL finishes.

    The backend is opened before the first URL and closed after the last one
    (or when the consumer stops iterating).
    """

    if not urls:
        raise ValueError("At least one landing page URL is required")

    total = len(urls)
    logger.info("Extracting %d landing pages via %s", total, backend.name)
    async with backend:
        for index, url in enumerate(urls, start=1):
            logger.info("Processing URL %d/%d: %s", index, total, url)
            try:
                record = await extract_one(url, provider, extraction_prompt, backend)
            except Exception as exc:
                logger.error("Error extracting %s: %s", url, exc, exc_info=True)
                record = placeholder_record(url, exc)
            yield ExtractionProgress(current=index, total=total, record=record)


async def extract_many(
    urls: Sequence[str],
    provider: Optional[Provider],
    extraction_prompt: str,
    backend: ExtractionBackend,
    on_progress: Optional[Callable[[ExtractionProgress], None]] = None,
) -> list[LandingPageRecord]:
    """Extract every URL and return records in input order, one per URL."""

    if not urls:
        raise ValueError("At least one landing page URL is required")

    start = time.perf_counter()
    records: list[LandingPageRecord] = []
    async with aclosing(iter_extract(urls, provider, extraction_prompt, backend)) as events:
        async for event in events:
            records.append(event.record)
            if on_progress is not None:
                on_progress(event)
    logger.info("Extraction of %d landing pages completed in %.2fs", len(records), time.perf_counter() - start)
    return records
