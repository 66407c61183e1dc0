"""Campaign generation pipeline.

Stages run in a fixed order: extract landing pages (sequential), group
keywords (one call), then generate ad copy for every ad group concurrently.
Extraction or grouping failures end the run with a :class:`PipelineError`;
an ad group whose copy cannot be generated keeps empty, correctly shaped
copy so the user can retry it later.
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional

from .ad_copy import generate_ad_copy
from .campaign import AdCopy, AdGroup, Campaign, PromptTemplates, ProviderSelection, replace_ad_copy
from .errors import PipelineError
from .extract import ExtractionBackend, iter_extract
from .grouping import group_keywords
from .prompts import default_prompts
from .schemas import Provider

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    GROUPING = "grouping"
    FINALIZING = "finalizing"


@dataclass
class CampaignRequest:
    name: str
    goal: str
    landing_page_urls: list[str]
    keywords: list[str]
    prompts: PromptTemplates = field(default_factory=default_prompts)


@dataclass
class PipelineEvent:
    stage: PipelineStage
    message: str
    current: Optional[int] = None
    total: Optional[int] = None
    campaign: Optional[Campaign] = None

    def to_json(self) -> dict:
        return {
            "stage": self.stage.value,
            "message": self.message,
            "current": self.current,
            "total": self.total,
            "campaign": self.campaign.to_json() if self.campaign is not None else None,
        }


class PipelineController:
    """Runs one campaign request at a time against a provider and extraction backend."""

    def __init__(
        self,
        provider: Provider,
        backend: ExtractionBackend,
        *,
        max_landing_pages: Optional[int] = 1,
        reconcile: Optional[bool] = None,
    ) -> None:
        self.provider = provider
        self.backend = backend
        self.max_landing_pages = max_landing_pages
        self.reconcile = reconcile
        self.state = PipelineStage.IDLE

    def _selection(self) -> ProviderSelection:
        return ProviderSelection(name=self.provider.name, model=self.provider.model)

    async def _with_ad_copy(self, adgroup: AdGroup, goal: str, prompts: PromptTemplates) -> AdGroup:
        try:
            ad_copy = await generate_ad_copy(
                adgroup,
                adgroup.landing_page_data,
                goal,
                self.provider,
                prompts.ad_copy,
                headline_count=prompts.headline_count,
            )
        except Exception as exc:
            logger.error("Failed to generate ads for %s (%s): %s", adgroup.id, adgroup.name, exc, exc_info=True)
            ad_copy = AdCopy.placeholder(prompts.headline_count)
        return adgroup.with_ad_copy(ad_copy)

    async def stream(self, request: CampaignRequest) -> AsyncIterator[PipelineEvent]:
        """Run the pipeline, yielding progress events; the last event carries the campaign."""

        if self.state is not PipelineStage.IDLE:
            raise PipelineError(self.state.value, "A campaign run is already in progress")

        run_start = time.perf_counter()
        prompts = request.prompts
        try:
            self.state = PipelineStage.EXTRACTING
            total = len(request.landing_page_urls)
            yield PipelineEvent(self.state, "Crawling landing pages - this may take a minute...", 0, total)
            landing_pages = []
            try:
                async with aclosing(
                    iter_extract(request.landing_page_urls, self.provider, prompts.extraction, self.backend)
                ) as progress_events:
                    async for progress in progress_events:
                        landing_pages.append(progress.record)
                        yield PipelineEvent(
                            self.state,
                            f"Extracted {progress.record.url}",
                            progress.current,
                            progress.total,
                        )
            except Exception as exc:
                logger.exception("Landing page extraction failed: %s", exc)
                raise PipelineError(self.state.value, f"Failed to extract landing pages: {exc}") from exc

            self.state = PipelineStage.GROUPING
            yield PipelineEvent(self.state, "Analyzing keywords and creating adgroups...")
            try:
                grouping = await group_keywords(
                    request.keywords,
                    landing_pages,
                    request.goal,
                    self.provider,
                    prompts.keyword_grouping,
                    max_landing_pages=self.max_landing_pages,
                    reconcile=self.reconcile,
                )
            except Exception as exc:
                logger.exception("Keyword grouping failed: %s", exc)
                raise PipelineError(self.state.value, f"Failed to group keywords: {exc}") from exc

            self.state = PipelineStage.FINALIZING
            count = len(grouping.adgroups)
            yield PipelineEvent(self.state, "Generating ad copy...", 0, count)
            adgroups = await asyncio.gather(
                *(self._with_ad_copy(adgroup, request.goal, prompts) for adgroup in grouping.adgroups)
            )

            campaign = Campaign(
                name=request.name,
                goal=request.goal,
                provider=self._selection(),
                landing_page_urls=list(request.landing_page_urls),
                keywords=list(request.keywords),
                adgroups=list(adgroups),
                irrelevant_keywords=grouping.irrelevant_keywords,
                prompts=prompts,
            )
            logger.info(
                "Campaign %r built with %d ad groups in %.2fs",
                request.name,
                count,
                time.perf_counter() - run_start,
            )
            yield PipelineEvent(self.state, "Campaign ready", count, count, campaign=campaign)
        finally:
            self.state = PipelineStage.IDLE

    async def run(self, request: CampaignRequest) -> Campaign:
        campaign: Optional[Campaign] = None
        async with aclosing(self.stream(request)) as events:
            async for event in events:
                if event.campaign is not None:
                    campaign = event.campaign
        if campaign is None:
            raise PipelineError(PipelineStage.FINALIZING.value, "Pipeline finished without a campaign")
        return campaign

    async def regenerate_adgroup(self, campaign: Campaign, adgroup_id: str) -> Campaign:
        """Regenerate copy for one ad group; generation errors propagate to the caller."""

        prompts = campaign.prompts or default_prompts()
        _, adgroup = campaign.find_adgroup(adgroup_id)
        ad_copy = await generate_ad_copy(
            adgroup,
            adgroup.landing_page_data,
            campaign.goal,
            self.provider,
            prompts.ad_copy,
            headline_count=prompts.headline_count,
        )
        return replace_ad_copy(campaign, adgroup_id, ad_copy)
