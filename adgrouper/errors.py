"""Exception types raised by the campaign pipeline and its collaborators."""
from __future__ import annotations


class AdGrouperError(Exception):
    """Base class for application errors."""


class ProviderError(AdGrouperError):
    """A text-generation backend could not be reached or rejected the call."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider} request failed: {message}")
        self.provider = provider
        self.message = message


class ParseError(AdGrouperError):
    """An LLM response did not contain the JSON structure we asked for."""


class ExtractionError(AdGrouperError):
    """A landing page could not be extracted."""


class ExtractionTimeout(ExtractionError):
    """The crawl service did not finish an extraction job in time."""


class PipelineError(AdGrouperError):
    """A fatal stage failure that halts a campaign run."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage


class ApiKeyNotConfigured(AdGrouperError):
    """No API key is available for the requested provider."""


class CampaignEditError(AdGrouperError):
    """An edit referenced an ad group or index that does not exist."""
