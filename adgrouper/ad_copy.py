"""Ad copy stage: headlines and descriptions for one ad group."""
from __future__ import annotations

import logging
import time
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator

from . import providers
from .campaign import (
    DEFAULT_HEADLINE_COUNT,
    DESCRIPTION_COUNT,
    DESCRIPTION_MAX_CHARS,
    HEADLINE_MAX_CHARS,
    AdCopy,
    AdGroup,
    LandingPageRecord,
)
from .errors import ParseError
from .parsing import AD_COPY_STRATEGIES, parse_json
from .prompts import AD_COPY_PROMPT, format_landing_pages, format_prompt
from .schemas import Provider

logger = logging.getLogger(__name__)


def _fit(values: list[str], count: int, max_chars: int) -> list[str]:
    fitted = [value[:max_chars] for value in values[:count]]
    fitted.extend([""] * (count - len(fitted)))
    return fitted


class AdCopyResponse(BaseModel):
    """Ad copy as the model returned it, clamped to the ad limits on validation.

    The target headline count comes from the validation context
    (``{"headline_count": n}``) because it depends on the prompt template.
    """

    headlines: List[str] = Field(default_factory=list, validate_default=True)
    descriptions: List[str] = Field(default_factory=list, validate_default=True)

    @field_validator("headlines", "descriptions", mode="before")
    @classmethod
    def coerce_text_list(cls, value: Any, info: ValidationInfo) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if not isinstance(value, list):
            logger.debug("Unexpected %s value from LLM (%s); using empty copy", info.field_name, type(value).__name__)
            return []
        return ["" if item is None else str(item) for item in value]

    @field_validator("headlines")
    @classmethod
    def fit_headlines(cls, value: list[str], info: ValidationInfo) -> list[str]:
        count = (info.context or {}).get("headline_count", DEFAULT_HEADLINE_COUNT)
        return _fit(value, count, HEADLINE_MAX_CHARS)

    @field_validator("descriptions")
    @classmethod
    def fit_descriptions(cls, value: list[str]) -> list[str]:
        return _fit(value, DESCRIPTION_COUNT, DESCRIPTION_MAX_CHARS)


def clamp_ad_copy(data: dict[str, Any], headline_count: int = DEFAULT_HEADLINE_COUNT) -> AdCopy:
    """Force parsed copy into the required shape.

    Headlines are cut to 30 characters and padded or trimmed to
    ``headline_count``; descriptions are cut to 90 characters and padded or
    trimmed to three. Wrongly typed fields become empty copy rather than
    errors; only a payload that is not an object raises :class:`ParseError`.
    """

    try:
        response = AdCopyResponse.model_validate(data, context={"headline_count": headline_count})
    except ValidationError as exc:
        raise ParseError(f"Ad copy response did not match the expected shape: {exc}") from exc
    return AdCopy(headlines=response.headlines, descriptions=response.descriptions)


async def generate_ad_copy(
    adgroup: AdGroup,
    landing_pages: Sequence[LandingPageRecord],
    goal: str,
    provider: Provider,
    prompt_template: Optional[str] = None,
    *,
    headline_count: int = DEFAULT_HEADLINE_COUNT,
) -> AdCopy:
    """Generate copy for ``adgroup``; raises ParseError when no JSON object comes back."""

    prompt = format_prompt(
        prompt_template or AD_COPY_PROMPT,
        {
            "campaignGoal": goal or "",
            "adgroupTheme": adgroup.name or "",
            "keywords": ", ".join(adgroup.active_keywords()),
            "landingPageData": format_landing_pages(landing_pages),
        },
    )
    start = time.perf_counter()
    response = await providers.call_text(provider, prompt)
    ad_copy = clamp_ad_copy(parse_json(response, AD_COPY_STRATEGIES), headline_count)
    logger.info("Generated ad copy for %s in %.2fs", adgroup.id, time.perf_counter() - start)
    return ad_copy
