"""FastAPI application entrypoint."""
from __future__ import annotations

import json
import logging
import os
import time
from contextlib import aclosing
from typing import AsyncIterator, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import Field
from sqlalchemy.orm import Session

from . import api_keys, config, providers, runs
from .ad_copy import generate_ad_copy
from .campaign import (
    AdGroup,
    Campaign,
    CamelModel,
    LandingPageRecord,
    PromptTemplates,
    ProviderSelection,
    add_keywords,
    move_keyword_to_irrelevant,
    set_description,
    set_headline,
    set_keyword_removed,
)
from .db import get_session, init_db, session_scope
from .errors import (
    ApiKeyNotConfigured,
    CampaignEditError,
    ParseError,
    PipelineError,
    ProviderError,
)
from .extract import ExtractionBackend, FirecrawlBackend, ScrapeSummarizeBackend, extract_many
from .grouping import group_keywords, suggest_keywords
from .logging_setup import configure_logging
from .models import Run
from .pipeline import CampaignRequest, PipelineController
from .prompts import AD_COPY_PROMPT_EARLY, EARLY_HEADLINE_COUNT, default_prompts
from .schemas import Provider, ProviderName
from .validation import parse_csv, validate_keywords, validate_landing_pages

LOG_FILE_PATH = configure_logging(os.getenv("LOG_LEVEL"))
logger = logging.getLogger(__name__)

app = FastAPI(title="Ad Grouper")

NDJSON_MEDIA_TYPE = "application/x-ndjson"


class ModelsRequest(CamelModel):
    provider: ProviderName
    api_key: Optional[str] = None


class KeyUpdate(CamelModel):
    key_type: str
    value: str


class ExtractRequest(CamelModel):
    urls: List[str]
    extraction_prompt: Optional[str] = None
    provider: Optional[ProviderSelection] = None
    backend: Optional[str] = None
    firecrawl_api_key: Optional[str] = None


class GroupKeywordsRequest(CamelModel):
    keywords: List[str] = Field(default_factory=list)
    keywords_csv: Optional[str] = None
    landing_page_data: List[LandingPageRecord] = Field(default_factory=list)
    campaign_goal: str = ""
    provider: ProviderSelection
    prompt: Optional[str] = None
    max_landing_pages: Optional[int] = Field(default=1, ge=1)
    reconcile: Optional[bool] = None


class GenerateAdsRequest(CamelModel):
    adgroup: AdGroup
    landing_page_data: Optional[List[LandingPageRecord]] = None
    campaign_goal: str = ""
    provider: ProviderSelection
    prompt: Optional[str] = None
    headline_count: Optional[int] = Field(default=None, ge=1, le=15)


class SuggestKeywordsRequest(CamelModel):
    adgroup_theme: str
    existing_keywords: List[str] = Field(default_factory=list)
    landing_page_data: List[LandingPageRecord] = Field(default_factory=list)
    campaign_goal: str = ""
    provider: ProviderSelection
    prompt: Optional[str] = None


class CampaignCreate(CamelModel):
    name: str
    goal: str
    landing_page_urls: List[str]
    keywords: List[str] = Field(default_factory=list)
    keywords_csv: Optional[str] = None
    provider: ProviderSelection
    prompts: Optional[PromptTemplates] = None
    backend: Optional[str] = None
    firecrawl_api_key: Optional[str] = None
    max_landing_pages: Optional[int] = Field(default=1, ge=1)
    reconcile: Optional[bool] = None
    persist: bool = False
    run_id: Optional[str] = None


class RegenerateRequest(CamelModel):
    campaign: Campaign
    adgroup_id: str
    api_key: Optional[str] = None


class CampaignEdit(CamelModel):
    campaign: Campaign
    action: Literal[
        "remove_keyword",
        "restore_keyword",
        "move_to_irrelevant",
        "add_keywords",
        "set_headline",
        "set_description",
    ]
    adgroup_id: str
    index: Optional[int] = None
    texts: List[str] = Field(default_factory=list)
    text: str = ""


class RunCreate(CamelModel):
    campaign: Campaign
    stage: str = "submitted"


class RunUpdate(CamelModel):
    stage: Optional[str] = None
    campaign: Optional[Campaign] = None


@app.on_event("startup")
def on_startup() -> None:
    start = time.perf_counter()
    logger.info("Starting application initialisation (log file %s)", LOG_FILE_PATH)
    init_db()
    logger.info("Database initialised in %.2fs", time.perf_counter() - start)


def _provider(session: Session, selection: ProviderSelection, request_key: Optional[str] = None) -> Provider:
    try:
        return api_keys.resolve_provider(
            session, selection.name, selection.model, request_key or selection.api_key
        )
    except (ApiKeyNotConfigured, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _backend(session: Session, name: Optional[str], firecrawl_key: Optional[str]) -> ExtractionBackend:
    name = (name or config.extraction_backend()).strip().lower()
    try:
        if name == "firecrawl":
            return FirecrawlBackend(api_keys.resolve_firecrawl_key(session, firecrawl_key))
        if name == "scrape":
            return ScrapeSummarizeBackend()
    except (ApiKeyNotConfigured, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=f"Unknown extraction backend '{name}'")


def _request_keywords(keywords: List[str], keywords_csv: Optional[str]) -> list[str]:
    """Typed keywords followed by the lines of an uploaded keyword CSV."""

    if keywords_csv:
        keywords = [*keywords, *parse_csv(keywords_csv)]
    return validate_keywords(keywords)


def _campaign_request(body: CampaignCreate) -> CampaignRequest:
    try:
        urls = validate_landing_pages(body.landing_page_urls)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    keywords = _request_keywords(body.keywords, body.keywords_csv)
    if not keywords:
        raise HTTPException(status_code=400, detail="Please enter at least one keyword")
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="Campaign name is required")
    return CampaignRequest(
        name=body.name.strip(),
        goal=body.goal,
        landing_page_urls=urls,
        keywords=keywords,
        prompts=body.prompts or default_prompts(),
    )


def _persist_results(session: Session, campaign: Campaign, run_id: Optional[str]) -> Run:
    if run_id:
        run = _get_run_or_404(session, run_id)
        return runs.update_run(session, run, stage="results", campaign=campaign)
    return runs.create_run(session, campaign, stage="results")


def _get_run_or_404(session: Session, run_id: str) -> Run:
    run = runs.get_run(session, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


@app.get("/api/prompts/defaults")
def prompt_defaults() -> dict:
    payload = default_prompts().model_dump(by_alias=True)
    payload["adCopyEarly"] = AD_COPY_PROMPT_EARLY
    payload["earlyHeadlineCount"] = EARLY_HEADLINE_COUNT
    return payload


@app.post("/api/models")
async def models(body: ModelsRequest, session: Session = Depends(get_session)) -> dict:
    api_key = None
    if body.provider is not ProviderName.CLAUDE:
        api_key = _provider(session, ProviderSelection(name=body.provider, model=""), body.api_key).api_key
    try:
        return {"models": await providers.list_models(body.provider.value, api_key)}
    except ProviderError as exc:
        logger.error("Listing %s models failed: %s", body.provider.value, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/api/config/keys")
def get_keys(session: Session = Depends(get_session)) -> dict:
    return {"source": config.api_key_source(), "keys": api_keys.key_presence(session)}


@app.put("/api/config/keys")
def put_key(body: KeyUpdate, session: Session = Depends(get_session)) -> dict:
    if config.api_key_source() == "client":
        raise HTTPException(status_code=400, detail="Server-side key storage is disabled (API_KEY_SOURCE=client)")
    try:
        api_keys.store_api_key(session, body.key_type, body.value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"keys": api_keys.key_presence(session)}


@app.post("/api/extract")
async def extract(body: ExtractRequest, session: Session = Depends(get_session)) -> dict:
    try:
        urls = validate_landing_pages(body.urls)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    provider = _provider(session, body.provider) if body.provider else None
    backend = _backend(session, body.backend, body.firecrawl_api_key)
    if provider is None and backend.name == ScrapeSummarizeBackend.name:
        raise HTTPException(status_code=400, detail="The scrape backend needs an AI provider to summarise pages")
    try:
        records = await extract_many(urls, provider, body.extraction_prompt or default_prompts().extraction, backend)
    except Exception as exc:
        logger.exception("Opening the %s extraction backend failed", backend.name)
        raise HTTPException(status_code=502, detail=f"Failed to extract landing pages: {exc}") from exc
    return {"data": [record.model_dump(by_alias=True) for record in records]}


@app.post("/api/group-keywords")
async def group(body: GroupKeywordsRequest, session: Session = Depends(get_session)) -> dict:
    keywords = _request_keywords(body.keywords, body.keywords_csv)
    if not keywords:
        raise HTTPException(status_code=400, detail="Keywords are required")
    provider = _provider(session, body.provider)
    try:
        result = await group_keywords(
            keywords,
            body.landing_page_data,
            body.campaign_goal,
            provider,
            body.prompt,
            max_landing_pages=body.max_landing_pages,
            reconcile=body.reconcile,
        )
    except (ProviderError, ParseError) as exc:
        logger.error("Keyword grouping request failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return result.model_dump(by_alias=True)


@app.post("/api/generate-ads")
async def generate_ads(body: GenerateAdsRequest, session: Session = Depends(get_session)) -> dict:
    provider = _provider(session, body.provider)
    landing_pages = body.landing_page_data if body.landing_page_data is not None else body.adgroup.landing_page_data
    headline_count = body.headline_count or default_prompts().headline_count
    try:
        ad_copy = await generate_ad_copy(
            body.adgroup,
            landing_pages,
            body.campaign_goal,
            provider,
            body.prompt,
            headline_count=headline_count,
        )
    except (ProviderError, ParseError) as exc:
        logger.error("Ad copy request for %s failed: %s", body.adgroup.id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ad_copy.model_dump(by_alias=True)


@app.post("/api/suggest-keywords")
async def suggest(body: SuggestKeywordsRequest, session: Session = Depends(get_session)) -> dict:
    provider = _provider(session, body.provider)
    try:
        suggestions = await suggest_keywords(
            body.adgroup_theme,
            body.existing_keywords,
            body.landing_page_data,
            body.campaign_goal,
            provider,
            body.prompt,
        )
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"keywords": suggestions}


@app.post("/api/campaigns")
async def create_campaign(body: CampaignCreate, session: Session = Depends(get_session)) -> dict:
    request = _campaign_request(body)
    provider = _provider(session, body.provider)
    backend = _backend(session, body.backend, body.firecrawl_api_key)
    controller = PipelineController(
        provider, backend, max_landing_pages=body.max_landing_pages, reconcile=body.reconcile
    )
    try:
        campaign = await controller.run(request)
    except PipelineError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    payload = {"campaign": campaign.to_json(), "runId": None}
    if body.persist:
        payload["runId"] = _persist_results(session, campaign, body.run_id).id
    return payload


async def _ndjson_events(
    controller: PipelineController,
    request: CampaignRequest,
    persist: bool,
    run_id: Optional[str],
) -> AsyncIterator[str]:
    try:
        async with aclosing(controller.stream(request)) as events:
            async for event in events:
                payload = event.to_json()
                if event.campaign is not None and persist:
                    with session_scope() as session:
                        payload["runId"] = _persist_results(session, event.campaign, run_id).id
                yield json.dumps(payload) + "\n"
    except PipelineError as exc:
        yield json.dumps({"stage": "error", "failedStage": exc.stage, "message": str(exc)}) + "\n"
    except HTTPException as exc:
        yield json.dumps({"stage": "error", "message": exc.detail}) + "\n"


@app.post("/api/campaigns/stream")
async def stream_campaign(body: CampaignCreate, session: Session = Depends(get_session)) -> StreamingResponse:
    request = _campaign_request(body)
    provider = _provider(session, body.provider)
    backend = _backend(session, body.backend, body.firecrawl_api_key)
    controller = PipelineController(
        provider, backend, max_landing_pages=body.max_landing_pages, reconcile=body.reconcile
    )
    return StreamingResponse(
        _ndjson_events(controller, request, body.persist, body.run_id),
        media_type=NDJSON_MEDIA_TYPE,
    )


@app.post("/api/campaigns/regenerate")
async def regenerate(body: RegenerateRequest, session: Session = Depends(get_session)) -> dict:
    provider = _provider(session, body.campaign.provider, body.api_key)
    # Regeneration never extracts pages, so the no-op base backend is enough.
    controller = PipelineController(provider, ExtractionBackend())
    try:
        campaign = await controller.regenerate_adgroup(body.campaign, body.adgroup_id)
    except CampaignEditError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (ProviderError, ParseError) as exc:
        logger.error("Regenerating %s failed: %s", body.adgroup_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"campaign": campaign.to_json()}


@app.post("/api/campaigns/edit")
def edit_campaign(body: CampaignEdit) -> dict:
    campaign = body.campaign
    try:
        if body.action in {"remove_keyword", "restore_keyword", "move_to_irrelevant", "set_headline", "set_description"}:
            if body.index is None:
                raise CampaignEditError(f"'{body.action}' needs an index")
        if body.action == "remove_keyword":
            campaign = set_keyword_removed(campaign, body.adgroup_id, body.index, True)
        elif body.action == "restore_keyword":
            campaign = set_keyword_removed(campaign, body.adgroup_id, body.index, False)
        elif body.action == "move_to_irrelevant":
            campaign = move_keyword_to_irrelevant(campaign, body.adgroup_id, body.index)
        elif body.action == "add_keywords":
            campaign = add_keywords(campaign, body.adgroup_id, body.texts)
        elif body.action == "set_headline":
            campaign = set_headline(campaign, body.adgroup_id, body.index, body.text)
        else:
            campaign = set_description(campaign, body.adgroup_id, body.index, body.text)
    except CampaignEditError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"campaign": campaign.to_json()}


@app.get("/api/runs")
def list_runs(session: Session = Depends(get_session)) -> dict:
    return {"runs": [runs.run_to_dict(run) for run in runs.list_runs(session)]}


@app.post("/api/runs", status_code=201)
def create_run(body: RunCreate, session: Session = Depends(get_session)) -> dict:
    try:
        run = runs.create_run(session, body.campaign, stage=body.stage)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return runs.run_to_dict(run, include_snapshots=True)


@app.get("/api/runs/{run_id}")
def get_run(run_id: str, session: Session = Depends(get_session)) -> dict:
    return runs.run_to_dict(_get_run_or_404(session, run_id), include_snapshots=True)


@app.patch("/api/runs/{run_id}")
def update_run(run_id: str, body: RunUpdate, session: Session = Depends(get_session)) -> dict:
    run = _get_run_or_404(session, run_id)
    try:
        runs.update_run(session, run, stage=body.stage, campaign=body.campaign)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return runs.run_to_dict(run, include_snapshots=True)


@app.delete("/api/runs/{run_id}", status_code=204)
def delete_run(run_id: str, session: Session = Depends(get_session)) -> None:
    runs.delete_run(session, _get_run_or_404(session, run_id))
