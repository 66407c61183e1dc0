"""Default prompt templates and placeholder substitution.

Templates use ``{placeholder}`` tokens that are replaced with plain string
substitution, so literal JSON braces in the templates are left untouched.
Two ad-copy template versions exist: the early one asks for 2 headlines and
the current one for 6; whoever sends a template must validate the response
against the matching headline count.
"""
from __future__ import annotations

from typing import Iterable, Mapping

from .campaign import LandingPageRecord, PromptTemplates

EARLY_HEADLINE_COUNT = 2
CURRENT_HEADLINE_COUNT = 6

EXTRACTION_PROMPT = """Extract the following information from the landing page:
1. Page title
2. Meta description
3. A summary of what is valuable to a user who is being sent to this page based on the keyword and ad copy. This summary should focus on the key value propositions, benefits, and what makes this page relevant to someone searching for related keywords."""

PAGE_TEXT_SECTION = "\n\nPAGE CONTENT:\n{pageText}"

KEYWORD_GROUPING_PROMPT = """You are an expert Google Ads campaign manager. Your task is to group keywords into tightly themed ad groups (TTAGs) following Google Ads best practices.

BEST PRACTICES FOR KEYWORD GROUPING:
1. Group keywords into small, semantically related clusters that share the same user intent
2. Keywords should be closely related enough that a single ad can effectively target all keywords in the group
3. Optimal structure: 7-10 ad groups per campaign, each containing 15-20 closely related keywords
4. Group by search intent (informational, navigational, transactional, commercial investigation)
5. Be ruthlessly efficient: If a keyword doesn't fit any adgroup/landing page combination, mark it as irrelevant
6. Keywords must match the campaign goal and align with the content and value proposition of one landing page

CAMPAIGN GOAL: {campaignGoal}

LANDING PAGES:
{landingPages}

KEYWORDS TO GROUP:
{keywords}

For each adgroup you create:
- Name the adgroup by its general theme (based on the closely associated keywords)
- List all keywords that belong to that adgroup
- Specify the single landing page URL that is most relevant for this adgroup
- Ensure keywords are tightly related and share the same search intent

Every keyword must appear exactly once: either in one adgroup or in irrelevantKeywords.

Return your response as a JSON object with this structure:
{
  "adgroups": [
    {
      "name": "Adgroup theme name",
      "keywords": ["keyword1", "keyword2"],
      "landingPageUrl": "url"
    }
  ],
  "irrelevantKeywords": ["keyword1", "keyword2"]
}

Be strict about relevance. Only include keywords that truly fit the adgroup theme and match the landing page content."""

_AD_COPY_BODY = """You are an expert Google Ads copywriter. Create compelling ad copy following Google Ads best practices.

BEST PRACTICES FOR AD COPY:
HEADLINES (30 characters max each):
- Incorporate primary keywords from the adgroup naturally
- Include unique selling propositions (USPs) and differentiators
- Use numbers and specifics when possible (e.g., "Over 1,000 Homes Painted" vs "Trusted by Many")
- Address user intent and highlight how the product/service meets specific needs
- Maintain natural, engaging language (avoid keyword stuffing)
- Each headline should be distinct and testable

DESCRIPTIONS (90 characters max each):
- Clearly convey the value proposition
- Include strong, action-oriented calls-to-action (CTAs): "Buy Now," "Sign Up," "Get a Quote," "Shop Now," "Learn More," "Get Started"
- Highlight unique benefits or features that set the offering apart
- Ensure messaging aligns with the corresponding landing page content
- Use concrete details and statistics when applicable
- Maintain consistency with ad headlines

CAMPAIGN GOAL: {campaignGoal}

ADGROUP THEME: {adgroupTheme}

KEYWORDS IN THIS ADGROUP: {keywords}

LANDING PAGE DATA:
{landingPageData}

Create __COUNT__ headlines (max 30 characters each) and 3 descriptions (max 90 characters each) that:
1. Incorporate the primary keywords naturally
2. Align with the landing page messaging and value propositions
3. Include compelling CTAs
4. Highlight unique selling points
5. Are compliant with Google Ads editorial guidelines

Return your response as a JSON object:
{
  "headlines": [__HEADLINES__],
  "descriptions": ["description1", "description2", "description3"]
}

Ensure all headlines are 30 characters or less, and all descriptions are 90 characters or less."""


def _ad_copy_template(headline_count: int) -> str:
    headlines = ", ".join(f'"headline{index}"' for index in range(1, headline_count + 1))
    return _AD_COPY_BODY.replace("__COUNT__", str(headline_count)).replace("__HEADLINES__", headlines)


AD_COPY_PROMPT_EARLY = _ad_copy_template(EARLY_HEADLINE_COUNT)
AD_COPY_PROMPT = _ad_copy_template(CURRENT_HEADLINE_COUNT)

KEYWORD_SUGGESTION_PROMPT = """You are an expert Google Ads keyword researcher. Suggest 5-10 additional tightly related keywords for an existing adgroup.

ADGROUP THEME: {adgroupTheme}

EXISTING KEYWORDS: {existingKeywords}

LANDING PAGE DATA:
{landingPageData}

CAMPAIGN GOAL: {campaignGoal}

Suggest 5-10 new keywords that:
1. Are tightly related to the existing keywords in the adgroup
2. Share the same search intent
3. Align with the landing page content and value propositions
4. Match the campaign goal
5. Would work well with the same ad copy as the existing keywords

Return your response as a JSON array of keyword strings:
["keyword1", "keyword2", "keyword3"]"""


def default_prompts() -> PromptTemplates:
    return PromptTemplates(
        extraction=EXTRACTION_PROMPT,
        keyword_grouping=KEYWORD_GROUPING_PROMPT,
        ad_copy=AD_COPY_PROMPT,
        keyword_suggestion=KEYWORD_SUGGESTION_PROMPT,
        headline_count=CURRENT_HEADLINE_COUNT,
    )


def format_prompt(template: str, variables: Mapping[str, str]) -> str:
    formatted = template
    for key, value in variables.items():
        formatted = formatted.replace(f"{{{key}}}", value)
    return formatted


def format_landing_pages(landing_pages: Iterable[LandingPageRecord]) -> str:
    blocks = [
        (
            f"\nURL {index}: {page.url}\n"
            f"Title: {page.title}\n"
            f"Meta Description: {page.meta_description}\n"
            f"Summary: {page.summary}\n"
        )
        for index, page in enumerate(landing_pages, start=1)
    ]
    return "\n---\n".join(blocks)


def page_summary_prompt(template: str, page_text: str) -> str:
    """Embed scraped page text in an extraction template."""

    if "{pageText}" not in template:
        template = template + PAGE_TEXT_SECTION
    return format_prompt(template, {"pageText": page_text})
