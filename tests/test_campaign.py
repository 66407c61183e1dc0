import pytest

from adgrouper.campaign import (
    AdCopy,
    AdGroup,
    Campaign,
    Keyword,
    LandingPageRecord,
    ProviderSelection,
    add_keywords,
    move_keyword_to_irrelevant,
    replace_ad_copy,
    set_description,
    set_headline,
    set_keyword_removed,
)
from adgrouper.errors import CampaignEditError
from adgrouper.schemas import ProviderName


def _campaign() -> Campaign:
    page = LandingPageRecord(url="https://a.test", title="A", meta_description="M", summary="S")
    return Campaign(
        name="Shoes",
        goal="sell shoes",
        provider=ProviderSelection(name=ProviderName.GEMINI, model="gemini-1.5-pro", api_key="secret"),
        landing_page_urls=["https://a.test"],
        keywords=["red shoes", "blue shoes", "shoe polish"],
        adgroups=[
            AdGroup(
                id="adgroup-1",
                name="Colored Shoes",
                keywords=[Keyword(text="red shoes"), Keyword(text="blue shoes"), Keyword(text="shoe polish")],
                landing_page_urls=["https://a.test"],
                landing_page_data=[page],
                headlines=["h"] * 6,
                descriptions=["d"] * 3,
            )
        ],
    )


def test_campaign_json_uses_camel_case_and_hides_api_key():
    payload = _campaign().to_json()

    assert payload["landingPageUrls"] == ["https://a.test"]
    assert payload["irrelevantKeywords"] == []
    adgroup = payload["adgroups"][0]
    assert adgroup["landingPageData"][0]["metaDescription"] == "M"
    assert payload["provider"] == {"name": "gemini", "model": "gemini-1.5-pro"}


def test_campaign_round_trips_from_camel_case_payload():
    campaign = _campaign()

    assert Campaign.model_validate(campaign.to_json()) == campaign.model_copy(
        update={"provider": ProviderSelection(name=ProviderName.GEMINI, model="gemini-1.5-pro")}
    )


def test_remove_and_restore_keyword():
    campaign = _campaign()

    removed = set_keyword_removed(campaign, "adgroup-1", 1)
    assert removed.adgroups[0].keywords[1].removed is True
    assert removed.adgroups[0].active_keywords() == ["red shoes", "shoe polish"]
    assert campaign.adgroups[0].keywords[1].removed is False

    restored = set_keyword_removed(removed, "adgroup-1", 1, removed=False)
    assert restored.adgroups[0].active_keywords() == ["red shoes", "blue shoes", "shoe polish"]


def test_move_keyword_to_irrelevant():
    updated = move_keyword_to_irrelevant(_campaign(), "adgroup-1", 2)

    assert [keyword.text for keyword in updated.adgroups[0].keywords] == ["red shoes", "blue shoes"]
    assert updated.irrelevant_keywords == ["shoe polish"]


def test_add_keywords_skips_duplicates_and_blanks():
    updated = add_keywords(_campaign(), "adgroup-1", ["Red Shoes", "crimson shoes", " ", "crimson shoes"])

    assert [keyword.text for keyword in updated.adgroups[0].keywords][-1] == "crimson shoes"
    assert len(updated.adgroups[0].keywords) == 4


def test_headline_and_description_edits_are_clamped():
    campaign = set_headline(_campaign(), "adgroup-1", 0, "x" * 50)
    campaign = set_description(campaign, "adgroup-1", 2, "y" * 200)

    assert campaign.adgroups[0].headlines[0] == "x" * 30
    assert campaign.adgroups[0].descriptions[2] == "y" * 90


def test_replace_ad_copy():
    ad_copy = AdCopy(headlines=["new"] * 6, descriptions=["copy"] * 3)

    updated = replace_ad_copy(_campaign(), "adgroup-1", ad_copy)

    assert updated.adgroups[0].headlines == ["new"] * 6
    assert updated.adgroups[0].keywords == _campaign().adgroups[0].keywords


def test_placeholder_copy_has_expected_shape():
    placeholder = AdCopy.placeholder(2)

    assert placeholder.headlines == ["", ""]
    assert placeholder.descriptions == ["", "", ""]


@pytest.mark.parametrize(
    "edit",
    [
        lambda campaign: set_keyword_removed(campaign, "adgroup-9", 0),
        lambda campaign: set_keyword_removed(campaign, "adgroup-1", 3),
        lambda campaign: move_keyword_to_irrelevant(campaign, "adgroup-1", -1),
        lambda campaign: set_headline(campaign, "adgroup-1", 6, "text"),
        lambda campaign: set_description(campaign, "adgroup-1", 3, "text"),
    ],
)
def test_invalid_edits_raise(edit):
    with pytest.raises(CampaignEditError):
        edit(_campaign())
