"""Campaign domain model and the edits a user can apply to a generated campaign.

Models serialise with camelCase keys (``metaDescription``,
``landingPageUrls``...) so persisted snapshots and API payloads keep the shape
the browser client works with. Edits never patch an ad group in place: each
one builds a replacement ad group and returns a new campaign.
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import CampaignEditError
from .schemas import ProviderName

HEADLINE_MAX_CHARS = 30
DESCRIPTION_MAX_CHARS = 90
DESCRIPTION_COUNT = 3
DEFAULT_HEADLINE_COUNT = 6


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LandingPageRecord(CamelModel):
    model_config = ConfigDict(frozen=True)

    url: str
    title: str
    meta_description: str
    summary: str


class Keyword(CamelModel):
    text: str
    removed: bool = False


class AdCopy(CamelModel):
    headlines: List[str]
    descriptions: List[str]

    @classmethod
    def placeholder(cls, headline_count: int = DEFAULT_HEADLINE_COUNT) -> "AdCopy":
        """Empty copy with the expected shape, used when generation fails."""

        return cls(headlines=[""] * headline_count, descriptions=[""] * DESCRIPTION_COUNT)


class AdGroup(CamelModel):
    id: str
    name: str
    keywords: List[Keyword] = Field(default_factory=list)
    landing_page_urls: List[str] = Field(default_factory=list)
    landing_page_data: List[LandingPageRecord] = Field(default_factory=list)
    headlines: List[str] = Field(default_factory=list)
    descriptions: List[str] = Field(default_factory=list)

    def active_keywords(self) -> list[str]:
        return [keyword.text for keyword in self.keywords if not keyword.removed]

    def with_ad_copy(self, ad_copy: AdCopy) -> "AdGroup":
        return self.model_copy(
            update={
                "headlines": list(ad_copy.headlines),
                "descriptions": list(ad_copy.descriptions),
            }
        )


class GroupingResult(CamelModel):
    adgroups: List[AdGroup]
    irrelevant_keywords: List[str] = Field(default_factory=list)


class PromptTemplates(CamelModel):
    extraction: str
    keyword_grouping: str
    ad_copy: str
    keyword_suggestion: str
    headline_count: int = Field(default=DEFAULT_HEADLINE_COUNT, ge=1, le=15)


class ProviderSelection(CamelModel):
    name: ProviderName
    model: str
    api_key: Optional[str] = Field(default=None, exclude=True, repr=False)


class Campaign(CamelModel):
    name: str
    goal: str
    provider: ProviderSelection
    landing_page_urls: List[str]
    keywords: List[str]
    adgroups: List[AdGroup] = Field(default_factory=list)
    irrelevant_keywords: List[str] = Field(default_factory=list)
    prompts: Optional[PromptTemplates] = None

    def find_adgroup(self, adgroup_id: str) -> tuple[int, AdGroup]:
        for index, adgroup in enumerate(self.adgroups):
            if adgroup.id == adgroup_id:
                return index, adgroup
        raise CampaignEditError(f"Unknown ad group '{adgroup_id}'")

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def _replace_adgroup(campaign: Campaign, index: int, adgroup: AdGroup, **updates) -> Campaign:
    adgroups = list(campaign.adgroups)
    adgroups[index] = adgroup
    return campaign.model_copy(update={"adgroups": adgroups, **updates})


def _check_index(items: list, index: int, label: str) -> None:
    if index < 0 or index >= len(items):
        raise CampaignEditError(f"{label} index {index} is out of range")


def set_keyword_removed(campaign: Campaign, adgroup_id: str, index: int, removed: bool = True) -> Campaign:
    position, adgroup = campaign.find_adgroup(adgroup_id)
    _check_index(adgroup.keywords, index, "Keyword")
    keywords = list(adgroup.keywords)
    keywords[index] = Keyword(text=keywords[index].text, removed=removed)
    return _replace_adgroup(campaign, position, adgroup.model_copy(update={"keywords": keywords}))


def move_keyword_to_irrelevant(campaign: Campaign, adgroup_id: str, index: int) -> Campaign:
    position, adgroup = campaign.find_adgroup(adgroup_id)
    _check_index(adgroup.keywords, index, "Keyword")
    keywords = list(adgroup.keywords)
    moved = keywords.pop(index)
    return _replace_adgroup(
        campaign,
        position,
        adgroup.model_copy(update={"keywords": keywords}),
        irrelevant_keywords=[*campaign.irrelevant_keywords, moved.text],
    )


def add_keywords(campaign: Campaign, adgroup_id: str, texts: list[str]) -> Campaign:
    position, adgroup = campaign.find_adgroup(adgroup_id)
    seen = {keyword.text.lower() for keyword in adgroup.keywords}
    keywords = list(adgroup.keywords)
    for text in texts:
        cleaned = text.strip()
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        keywords.append(Keyword(text=cleaned))
    return _replace_adgroup(campaign, position, adgroup.model_copy(update={"keywords": keywords}))


def set_headline(campaign: Campaign, adgroup_id: str, index: int, text: str) -> Campaign:
    position, adgroup = campaign.find_adgroup(adgroup_id)
    _check_index(adgroup.headlines, index, "Headline")
    headlines = list(adgroup.headlines)
    headlines[index] = text[:HEADLINE_MAX_CHARS]
    return _replace_adgroup(campaign, position, adgroup.model_copy(update={"headlines": headlines}))


def set_description(campaign: Campaign, adgroup_id: str, index: int, text: str) -> Campaign:
    position, adgroup = campaign.find_adgroup(adgroup_id)
    _check_index(adgroup.descriptions, index, "Description")
    descriptions = list(adgroup.descriptions)
    descriptions[index] = text[:DESCRIPTION_MAX_CHARS]
    return _replace_adgroup(
        campaign, position, adgroup.model_copy(update={"descriptions": descriptions})
    )


def replace_ad_copy(campaign: Campaign, adgroup_id: str, ad_copy: AdCopy) -> Campaign:
    position, adgroup = campaign.find_adgroup(adgroup_id)
    return _replace_adgroup(campaign, position, adgroup.with_ad_copy(ad_copy))
