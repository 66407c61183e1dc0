"""Keyword grouping stage and per-ad-group keyword suggestions."""
from __future__ import annotations

import logging
import re
import time
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from . import config, providers
from .campaign import AdGroup, GroupingResult, Keyword, LandingPageRecord
from .errors import ParseError
from .parsing import ARRAY_STRATEGIES, OBJECT_STRATEGIES, parse_json
from .prompts import (
    KEYWORD_GROUPING_PROMPT,
    KEYWORD_SUGGESTION_PROMPT,
    format_landing_pages,
    format_prompt,
)
from .schemas import Provider

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 10
_SUGGESTION_SPLIT = re.compile(r"[,\n]")
_SURROUNDING_QUOTES = re.compile(r"^[\"']|[\"']$")


def _text_list(value: Any, field_name: str) -> list[str]:
    """Accept a list of strings (or ``{"text": ...}`` objects) or one bare string."""

    if value is None:
        return []
    if isinstance(value, str):
        logger.debug("Model returned %s as a single string; wrapping it in a list", field_name)
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"{field_name} must be a list of strings, got {type(value).__name__}")
    texts = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("text")
        if item is None:
            continue
        text = str(item).strip()
        if text:
            texts.append(text)
    return texts


class AdGroupDraft(BaseModel):
    """One ad group as the model returned it, before ids and page data are attached."""

    name: str = ""
    keywords: List[str] = Field(default_factory=list)
    landing_page_url: Optional[str] = Field(default=None, alias="landingPageUrl")
    landing_page_urls: List[str] = Field(default_factory=list, alias="landingPageUrls")

    @field_validator("name", mode="before")
    @classmethod
    def blank_name(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("keywords", mode="before")
    @classmethod
    def coerce_keywords(cls, value: Any) -> list[str]:
        return _text_list(value, "keywords")

    @field_validator("landing_page_url", mode="before")
    @classmethod
    def blank_url(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()

    @field_validator("landing_page_urls", mode="before")
    @classmethod
    def coerce_urls(cls, value: Any) -> list[str]:
        return list(dict.fromkeys(_text_list(value, "landingPageUrls")))

    def urls(self, max_landing_pages: Optional[int]) -> list[str]:
        """The single ``landingPageUrl`` wins over the array form."""

        urls = [self.landing_page_url] if self.landing_page_url else list(self.landing_page_urls)
        if max_landing_pages is not None:
            urls = urls[:max_landing_pages]
        return urls


class GroupingResponse(BaseModel):
    adgroups: List[AdGroupDraft]
    irrelevant_keywords: List[str] = Field(default_factory=list, alias="irrelevantKeywords")

    @field_validator("irrelevant_keywords", mode="before")
    @classmethod
    def coerce_irrelevant(cls, value: Any) -> list[str]:
        return _text_list(value, "irrelevantKeywords")


def build_grouping_result(
    parsed: dict[str, Any],
    landing_pages: Sequence[LandingPageRecord],
    max_landing_pages: Optional[int] = 1,
) -> GroupingResult:
    """Turn the model's JSON into ad groups with ids and matched landing pages."""

    try:
        response = GroupingResponse.model_validate(parsed)
    except ValidationError as exc:
        raise ParseError(f"Grouping response did not match the expected shape: {exc}") from exc

    adgroups = []
    for index, draft in enumerate(response.adgroups):
        urls = draft.urls(max_landing_pages)
        adgroups.append(
            AdGroup(
                id=f"adgroup-{index + 1}",
                name=draft.name or f"Ad group {index + 1}",
                keywords=[Keyword(text=text) for text in draft.keywords],
                landing_page_urls=urls,
                landing_page_data=[page for page in landing_pages if page.url in urls],
            )
        )

    return GroupingResult(adgroups=adgroups, irrelevant_keywords=response.irrelevant_keywords)


def ungrouped_keywords(keywords: Sequence[str], result: GroupingResult) -> list[str]:
    """Input keywords the model placed in neither an ad group nor the irrelevant bucket."""

    placed = {text.lower() for text in result.irrelevant_keywords}
    for adgroup in result.adgroups:
        placed.update(keyword.text.lower() for keyword in adgroup.keywords)
    return [keyword for keyword in keywords if keyword.lower() not in placed]


async def group_keywords(
    keywords: Sequence[str],
    landing_pages: Sequence[LandingPageRecord],
    goal: str,
    provider: Provider,
    prompt_template: Optional[str] = None,
    *,
    max_landing_pages: Optional[int] = 1,
    reconcile: Optional[bool] = None,
) -> GroupingResult:
    """Group ``keywords`` into ad groups with one provider call.

    The model's partition is trusted. Keywords it leaves out of both buckets
    are logged, and appended to ``irrelevant_keywords`` only when
    ``reconcile`` is enabled.
    """

    if not keywords:
        raise ValueError("Keywords are required")

    prompt = format_prompt(
        prompt_template or KEYWORD_GROUPING_PROMPT,
        {
            "campaignGoal": goal,
            "landingPages": format_landing_pages(landing_pages),
            "keywords": ", ".join(keywords),
        },
    )
    start = time.perf_counter()
    response = await providers.call_text(provider, prompt)
    result = build_grouping_result(parse_json(response, OBJECT_STRATEGIES), landing_pages, max_landing_pages)

    if reconcile is None:
        reconcile = config.reconcile_ungrouped_keywords()
    missing = ungrouped_keywords(keywords, result)
    if missing:
        logger.warning("%d keywords were not placed by the model: %s", len(missing), missing)
        if reconcile:
            result = result.model_copy(update={"irrelevant_keywords": [*result.irrelevant_keywords, *missing]})

    logger.info(
        "Grouped %d keywords into %d ad groups (%d irrelevant) in %.2fs",
        len(keywords),
        len(result.adgroups),
        len(result.irrelevant_keywords),
        time.perf_counter() - start,
    )
    return result


def _split_suggestions(response: str) -> list[str]:
    return [_SURROUNDING_QUOTES.sub("", part.strip()) for part in _SUGGESTION_SPLIT.split(response)]


async def suggest_keywords(
    adgroup_theme: str,
    existing_keywords: Sequence[str],
    landing_pages: Sequence[LandingPageRecord],
    goal: str,
    provider: Provider,
    prompt_template: Optional[str] = None,
) -> list[str]:
    """Ask for up to ten more keywords that fit an existing ad group."""

    prompt = format_prompt(
        prompt_template or KEYWORD_SUGGESTION_PROMPT,
        {
            "adgroupTheme": adgroup_theme,
            "existingKeywords": ", ".join(existing_keywords),
            "landingPageData": format_landing_pages(landing_pages),
            "campaignGoal": goal or "",
        },
    )
    response = await providers.call_text(provider, prompt)
    try:
        candidates = [str(item) for item in parse_json(response, ARRAY_STRATEGIES, expect=list)]
    except ParseError:
        logger.debug("Suggestion response is not a JSON array; splitting plain text")
        candidates = _split_suggestions(response)

    existing = {keyword.lower() for keyword in existing_keywords}
    suggestions: list[str] = []
    for candidate in candidates:
        text = candidate.strip()
        if not text or text.lower() in existing:
            continue
        existing.add(text.lower())
        suggestions.append(text)
    return suggestions[:MAX_SUGGESTIONS]
