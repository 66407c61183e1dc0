"""Landing page fetching with a headless browser and HTML-to-text conversion."""
from __future__ import annotations

import logging
import re
from typing import Optional

from bs4 import BeautifulSoup
from playwright.async_api import Browser, Playwright, async_playwright

from . import config
from .errors import ExtractionError
from .schemas import ScrapedPage

logger = logging.getLogger(__name__)

NO_TITLE = "No title found"
NO_META_DESCRIPTION = "No meta description found"

STRIP_SELECTORS = (
    "nav",
    "header",
    "footer",
    "script",
    "style",
    "noscript",
    "svg",
    "iframe",
    "img",
    '[role="navigation"]',
    '[role="banner"]',
    '[role="contentinfo"]',
    ".cookie-banner",
    ".cookie-consent",
    "#cookie-banner",
)

BLOCK_TAGS = (
    "p",
    "div",
    "section",
    "article",
    "aside",
    "blockquote",
    "pre",
    "table",
    "tr",
    "ul",
    "ol",
    "dl",
    "dt",
    "dd",
    "br",
    "hr",
    "form",
)

_INLINE_WHITESPACE = re.compile(r"[ \t\f\v\u00a0]+")


def html_to_markdown(html: str) -> str:
    """Convert the main content of a page to compact markdown-style text.

    Navigation, banners, cookie notices, scripts and images are dropped; the
    ``<main>`` element (or ``[role=main]``, then ``<body>``) is kept. Headings
    become ATX headings and list items become ``-`` bullets, with nested lists
    indented two spaces under their parent item.
    """

    soup = BeautifulSoup(html, "html.parser")
    for selector in STRIP_SELECTORS:
        for tag in soup.select(selector):
            if not tag.decomposed:
                tag.decompose()

    root = soup.find("main") or soup.find(attrs={"role": "main"}) or soup.body or soup

    for level in range(1, 7):
        for heading in root.find_all(f"h{level}"):
            text = heading.get_text(" ", strip=True)
            heading.replace_with(f"\n\n{'#' * level} {text}\n\n" if text else "")

    # Innermost first; a nested list is indented under its parent bullet.
    for item in reversed(root.find_all("li")):
        nested = []
        for sublist in item.find_all(["ul", "ol"]):
            if sublist.find_parent("li") is not item:
                continue
            nested.extend(f"  {line.rstrip()}" for line in sublist.get_text().splitlines() if line.strip())
            sublist.extract()
        text = item.get_text(" ", strip=True)
        bullet = f"\n- {text}\n" if text else ("\n" if nested else "")
        item.replace_with(bullet + "".join(f"{line}\n" for line in nested))

    for tag in root.find_all(BLOCK_TAGS):
        tag.insert_after("\n")

    lines: list[str] = []
    for raw_line in root.get_text().splitlines():
        line = _INLINE_WHITESPACE.sub(" ", raw_line).strip()
        if line.startswith("- "):
            line = raw_line[: len(raw_line) - len(raw_line.lstrip(" "))] + line
        if line or (lines and lines[-1]):
            lines.append(line)
    return "\n".join(lines).strip()


def truncate_text(text: str, limit: Optional[int] = None) -> str:
    limit = limit or config.max_page_text_chars()
    if len(text) <= limit:
        return text
    return text[:limit] + "\n\n[... content truncated ...]"


class BrowserScraper:
    """A Chromium instance shared by every URL in one batch.

    Use as an async context manager; each :meth:`scrape` call opens its own
    page and closes it whether or not navigation succeeds.
    """

    def __init__(self, headless: Optional[bool] = None, navigation_timeout_ms: Optional[int] = None) -> None:
        self.headless = config.scraper_headless() if headless is None else headless
        self.navigation_timeout_ms = navigation_timeout_ms or config.navigation_timeout_ms()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def __aenter__(self) -> "BrowserScraper":
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise
        logger.info("Launched headless browser (headless=%s)", self.headless)
        return self

    async def __aexit__(self, *exc_info) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            logger.info("Closed headless browser")

    async def scrape(self, url: str) -> ScrapedPage:
        if self._browser is None:
            raise ExtractionError("Browser is not running; use BrowserScraper as a context manager")

        page = await self._browser.new_page()
        try:
            await page.goto(url, wait_until="networkidle", timeout=self.navigation_timeout_ms)
            title = (await page.title()).strip() or NO_TITLE
            meta_tag = await page.query_selector('meta[name="description"]')
            meta_description = ""
            if meta_tag is not None:
                meta_description = ((await meta_tag.get_attribute("content")) or "").strip()
            html = await page.content()
        finally:
            await page.close()

        return ScrapedPage(
            url=url,
            title=title,
            meta_description=meta_description or NO_META_DESCRIPTION,
            text=html_to_markdown(html),
        )
