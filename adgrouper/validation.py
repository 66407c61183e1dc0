"""Input clean-up for landing page URLs and keyword lists."""
from __future__ import annotations

from typing import Iterable, Optional
from urllib.parse import urlparse

from . import config


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def split_urls(urls: Iterable[str]) -> tuple[list[str], list[str]]:
    """Return ``(valid, invalid)`` after trimming; blank entries are ignored."""

    valid: list[str] = []
    invalid: list[str] = []
    for url in urls:
        trimmed = url.strip()
        if not trimmed:
            continue
        (valid if is_valid_url(trimmed) else invalid).append(trimmed)
    return valid, invalid


def validate_landing_pages(urls: Iterable[str], limit: Optional[int] = None) -> list[str]:
    """Validate URLs for a campaign run, raising ValueError with a readable message."""

    limit = limit or config.max_landing_pages()
    valid, invalid = split_urls(urls)
    if invalid:
        raise ValueError(f"Invalid URLs: {', '.join(invalid)}")
    if not valid:
        raise ValueError("Please enter at least one valid landing page URL")
    if len(valid) > limit:
        raise ValueError(f"Maximum {limit} URLs allowed")
    return valid


def validate_keywords(keywords: Iterable[str], limit: Optional[int] = None) -> list[str]:
    limit = limit or config.max_keywords()
    cleaned = [keyword.strip() for keyword in keywords]
    return [keyword for keyword in cleaned if keyword][:limit]


def parse_csv(text: str) -> list[str]:
    """One value per line, surrounding single or double quotes removed."""

    values = []
    for line in text.splitlines():
        value = line.strip()
        if not value:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        values.append(value)
    return values
