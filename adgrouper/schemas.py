"""Shared data structures used across modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .campaign import LandingPageRecord


class ProviderName(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"


@dataclass(slots=True)
class Provider:
    """A resolved provider: backend, model and the credential to call it with."""

    name: ProviderName
    model: str
    api_key: str = field(repr=False)


@dataclass(slots=True)
class ScrapedPage:
    url: str
    title: str
    meta_description: str
    text: str


@dataclass(slots=True)
class ExtractionProgress:
    current: int
    total: int
    record: LandingPageRecord
