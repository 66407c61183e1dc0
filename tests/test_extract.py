import asyncio

import httpx
import pytest

from adgrouper import extract, providers
from adgrouper.campaign import LandingPageRecord
from adgrouper.errors import ExtractionError, ExtractionTimeout, ProviderError
from adgrouper.extract import (
    ExtractionBackend,
    FirecrawlBackend,
    ScrapeSummarizeBackend,
    extract_many,
    iter_extract,
)
from adgrouper.firecrawl import FirecrawlClient
from adgrouper.schemas import Provider, ProviderName, ScrapedPage

PROVIDER = Provider(name=ProviderName.GEMINI, model="gemini-1.5-flash", api_key="g-test")
BASE_URL = "https://firecrawl.test/v2"


class RecordingBackend(ExtractionBackend):
    """Counts concurrent extract calls and fails on selected URLs."""

    name = "recording"

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls = []
        self.entered = 0
        self.exited = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, *exc_info):
        self.exited += 1

    async def extract(self, url, provider, prompt):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.calls.append(url)
        try:
            await asyncio.sleep(0)
            if url in self.failing:
                raise ExtractionError(f"boom for {url}")
            return LandingPageRecord(url=url, title=f"T {url}", meta_description="m", summary="s")
        finally:
            self.in_flight -= 1


def test_extract_many_preserves_order_and_length_with_failures():
    urls = ["https://a.test", "https://b.test", "https://c.test"]
    backend = RecordingBackend(failing={"https://b.test"})

    records = asyncio.run(extract_many(urls, PROVIDER, "prompt", backend))

    assert [record.url for record in records] == urls
    assert records[0].title == "T https://a.test"
    assert records[1].title == "Error extracting page"
    assert records[1].meta_description == "Error extracting page"
    assert records[1].summary == "Failed to extract: boom for https://b.test"
    assert records[2].title == "T https://c.test"


def test_extraction_is_sequential_and_backend_scoped_to_batch():
    urls = [f"https://site{i}.test" for i in range(5)]
    backend = RecordingBackend()

    asyncio.run(extract_many(urls, PROVIDER, "prompt", backend))

    assert backend.max_in_flight == 1
    assert backend.calls == urls
    assert backend.entered == 1
    assert backend.exited == 1


def test_iter_extract_reports_progress_after_each_url():
    urls = ["https://a.test", "https://b.test"]

    async def collect():
        return [event async for event in iter_extract(urls, None, "prompt", RecordingBackend())]

    events = asyncio.run(collect())

    assert [(event.current, event.total) for event in events] == [(1, 2), (2, 2)]
    assert [event.record.url for event in events] == urls


def test_on_progress_callback_receives_each_event():
    seen = []

    asyncio.run(
        extract_many(["https://a.test", "https://b.test"], None, "prompt", RecordingBackend(), on_progress=seen.append)
    )

    assert [event.current for event in seen] == [1, 2]


def test_empty_url_list_rejected():
    backend = RecordingBackend()

    with pytest.raises(ValueError):
        asyncio.run(extract_many([], PROVIDER, "prompt", backend))
    assert backend.entered == 0


class FakeScraper:
    def __init__(self, pages):
        self.pages = pages
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    async def scrape(self, url):
        return self.pages[url]


def test_scrape_backend_summarises_page_text(monkeypatch):
    prompts = []

    async def fake_call_text(provider, prompt, system_prompt=None):
        prompts.append(prompt)
        return "  Great shoes at fair prices.  "

    monkeypatch.setattr(providers, "call_text", fake_call_text)
    scraper = FakeScraper({"https://a.test": ScrapedPage("https://a.test", "Shoes", "Buy shoes", "# Shoes\n\nRed ones")})

    records = asyncio.run(
        extract_many(["https://a.test"], PROVIDER, "Summarise:\n{pageText}", ScrapeSummarizeBackend(scraper))
    )

    assert records == [
        LandingPageRecord(url="https://a.test", title="Shoes", meta_description="Buy shoes", summary="Great shoes at fair prices.")
    ]
    assert prompts == ["Summarise:\n# Shoes\n\nRed ones"]
    assert scraper.closed


def test_scrape_backend_handles_empty_page_and_provider_failure(monkeypatch):
    async def failing_call_text(provider, prompt, system_prompt=None):
        raise ProviderError("gemini", "quota exceeded")

    monkeypatch.setattr(providers, "call_text", failing_call_text)
    scraper = FakeScraper(
        {
            "https://empty.test": ScrapedPage("https://empty.test", "Empty", "No meta description found", ""),
            "https://full.test": ScrapedPage("https://full.test", "Full", "Meta", "Some text"),
        }
    )

    records = asyncio.run(
        extract_many(["https://empty.test", "https://full.test"], PROVIDER, "prompt", ScrapeSummarizeBackend(scraper))
    )

    assert records[0].summary == "No content available to summarize"
    assert records[1].summary == "Summary extraction failed: gemini request failed: quota exceeded"
    assert records[1].title == "Full"


def test_scrape_backend_without_provider_yields_placeholder():
    scraper = FakeScraper({"https://a.test": ScrapedPage("https://a.test", "A", "M", "text")})

    records = asyncio.run(extract_many(["https://a.test"], None, "prompt", ScrapeSummarizeBackend(scraper)))

    assert records[0].title == "Error extracting page"
    assert "needs an AI provider" in records[0].summary


def _firecrawl_backend(handler, max_poll_attempts=3):
    return FirecrawlBackend(
        "fc-test",
        base_url=BASE_URL,
        poll_interval=0,
        max_poll_attempts=max_poll_attempts,
        transport=httpx.MockTransport(handler),
    )


def test_firecrawl_inline_data_is_used_directly():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(
            200,
            json={"success": True, "data": {"page_title": "Home", "meta_description": "", "summary": "All about us"}},
        )

    records = asyncio.run(extract_many(["https://a.test"], None, "Extract", _firecrawl_backend(handler)))

    assert records[0] == LandingPageRecord(
        url="https://a.test", title="Home", meta_description="No meta description found", summary="All about us"
    )
    assert len(requests) == 1
    assert requests[0].url.path == "/v2/extract"
    assert requests[0].headers["Authorization"] == "Bearer fc-test"


def test_firecrawl_job_is_polled_until_completed():
    statuses = iter(["processing", "processing", "completed"])

    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"success": True, "id": "job-1"})
        assert request.url.path == "/v2/extract/job-1"
        status = next(statuses)
        payload = {"status": status}
        if status == "completed":
            payload["data"] = {"page_title": "Done", "meta_description": "Meta", "summary": "Summary"}
        return httpx.Response(200, json=payload)

    records = asyncio.run(
        extract_many(["https://a.test"], None, "Extract", _firecrawl_backend(handler, max_poll_attempts=5))
    )

    assert records[0].title == "Done"
    assert records[0].summary == "Summary"


def test_firecrawl_job_that_never_completes_becomes_timeout_placeholder():
    poll_counts = {}

    def handler(request):
        if request.method == "POST":
            url = request.read().decode()
            if "stuck.test" in url:
                return httpx.Response(200, json={"success": True, "id": "job-stuck"})
            return httpx.Response(
                200, json={"success": True, "data": {"page_title": "Fine", "meta_description": "M", "summary": "S"}}
            )
        poll_counts[request.url.path] = poll_counts.get(request.url.path, 0) + 1
        return httpx.Response(200, json={"status": "processing"})

    urls = ["https://ok.test", "https://stuck.test", "https://also-ok.test"]
    records = asyncio.run(extract_many(urls, None, "Extract", _firecrawl_backend(handler, max_poll_attempts=3)))

    assert [record.url for record in records] == urls
    assert records[0].title == "Fine"
    assert records[1].title == "Error extracting page"
    assert "timed out" in records[1].summary
    assert records[2].title == "Fine"
    assert poll_counts == {"/v2/extract/job-stuck": 3}


def test_firecrawl_poll_raises_timeout_directly():
    def handler(request):
        return httpx.Response(200, json={"status": "processing"})

    async def run():
        async with FirecrawlClient(
            "fc-test", base_url=BASE_URL, poll_interval=0, max_poll_attempts=2, transport=httpx.MockTransport(handler)
        ) as client:
            await client.poll("job-9")

    with pytest.raises(ExtractionTimeout):
        asyncio.run(run())


def test_firecrawl_failed_job_and_http_errors_raise():
    def failed(request):
        if request.method == "POST":
            return httpx.Response(200, json={"success": True, "id": "job-2"})
        return httpx.Response(200, json={"status": "failed", "error": "blocked by robots.txt"})

    def unauthorized(request):
        return httpx.Response(401, text="Invalid token")

    async def run(handler):
        async with FirecrawlClient(
            "fc-test", base_url=BASE_URL, poll_interval=0, max_poll_attempts=2, transport=httpx.MockTransport(handler)
        ) as client:
            await client.extract("https://a.test", "Extract")

    with pytest.raises(ExtractionError) as excinfo:
        asyncio.run(run(failed))
    assert "blocked by robots.txt" in str(excinfo.value)
    assert not isinstance(excinfo.value, ExtractionTimeout)

    with pytest.raises(ExtractionError) as excinfo:
        asyncio.run(run(unauthorized))
    assert "401" in str(excinfo.value)
    assert "Invalid token" in str(excinfo.value)


def test_firecrawl_requests_are_never_concurrent():
    state = {"in_flight": 0, "max": 0}

    async def handler(request):
        state["in_flight"] += 1
        state["max"] = max(state["max"], state["in_flight"])
        await asyncio.sleep(0)
        state["in_flight"] -= 1
        return httpx.Response(
            200, json={"success": True, "data": {"page_title": "P", "meta_description": "M", "summary": "S"}}
        )

    urls = [f"https://p{i}.test" for i in range(4)]
    records = asyncio.run(extract_many(urls, None, "Extract", _firecrawl_backend(handler)))

    assert len(records) == 4
    assert state["max"] == 1


def test_extract_module_uses_placeholder_text():
    record = extract.placeholder_record("https://x.test", RuntimeError())

    assert record.summary == "Failed to extract: RuntimeError"
