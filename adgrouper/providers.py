"""Provider gateway: one call interface over the hosted text-generation backends."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import anthropic
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from . import config
from .errors import ProviderError
from .schemas import Provider, ProviderName

logger = logging.getLogger(__name__)

OPENAI_TEMPERATURE = 0.7
CLAUDE_MAX_TOKENS = 4096

# Anthropic has no public model-listing endpoint we rely on; the list is pinned
# and updated alongside releases.
CLAUDE_MODELS = [
    "claude-opus-4-5-20251101",
    "claude-sonnet-4-5-20250929",
    "claude-sonnet-4-20250514",
    "claude-3-5-haiku-20241022",
]

_SDK_ERRORS = (
    openai.OpenAIError,
    anthropic.AnthropicError,
    genai_errors.APIError,
)

# Models in the GPT-5 family ignore custom temperature values and return 400
# errors when one is supplied, so overrides are suppressed for them.
_temperature_warnings_issued: set[str] = set()


def _temperature_kwargs(model: str, desired: float | None) -> dict[str, float]:
    """Return kwargs for temperature respecting model limitations."""

    if desired is None:
        return {}

    compact = model.strip().lower().replace("_", "-").replace(" ", "")
    if compact.startswith("gpt-5") or compact.startswith("gpt5"):
        if desired != 1 and compact not in _temperature_warnings_issued:
            logger.info(
                "Model %s ignores custom temperature; skipping override %.2f",
                model,
                desired,
            )
            _temperature_warnings_issued.add(compact)
        return {}

    return {"temperature": desired}


def _openai_client(api_key: str, timeout: float | None = None) -> openai.AsyncOpenAI:
    return openai.AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)


def _anthropic_client(api_key: str, timeout: float | None = None) -> anthropic.AsyncAnthropic:
    return anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)


async def _call_openai(provider: Provider, prompt: str, system_prompt: Optional[str], timeout: float) -> str:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    async with _openai_client(provider.api_key, timeout) as client:
        response = await client.chat.completions.create(
            model=provider.model,
            messages=messages,
            **_temperature_kwargs(provider.model, OPENAI_TEMPERATURE),
        )
    if not response.choices:
        return ""
    return response.choices[0].message.content or ""


def _gemini_client(api_key: str, timeout: float | None = None) -> genai.Client:
    # One client per call; concurrent requests never share a key.
    http_options = genai_types.HttpOptions(timeout=int(timeout * 1000)) if timeout else None
    return genai.Client(api_key=api_key, http_options=http_options)


async def _call_gemini(provider: Provider, prompt: str, system_prompt: Optional[str], timeout: float) -> str:
    client = _gemini_client(provider.api_key, timeout)
    response = await client.aio.models.generate_content(
        model=provider.model,
        contents=prompt,
        config=genai_types.GenerateContentConfig(system_instruction=system_prompt or None),
    )
    if response.text is None:
        # Blocked responses and responses without text parts.
        raise ProviderError(ProviderName.GEMINI.value, "response contained no text")
    return response.text


async def _call_claude(provider: Provider, prompt: str, system_prompt: Optional[str], timeout: float) -> str:
    kwargs = {}
    if system_prompt:
        kwargs["system"] = system_prompt
    async with _anthropic_client(provider.api_key, timeout) as client:
        message = await client.messages.create(
            model=provider.model,
            max_tokens=CLAUDE_MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )
    for block in message.content:
        if block.type == "text":
            return block.text
    return ""


def _backend_for(name: ProviderName):
    if name is ProviderName.OPENAI:
        return _call_openai
    if name is ProviderName.GEMINI:
        return _call_gemini
    return _call_claude


async def call_text(provider: Provider, prompt: str, system_prompt: Optional[str] = None) -> str:
    """Send ``prompt`` to the provider's backend and return the raw completion text.

    Failures of any kind (bad key, quota, network, timeout) surface as
    :class:`ProviderError`. Nothing is retried here.
    """

    try:
        name = ProviderName(provider.name)
    except ValueError as exc:
        raise ProviderError(str(provider.name), "unknown provider") from exc

    backend = _backend_for(name)
    timeout = config.provider_timeout()
    start = time.perf_counter()
    try:
        text = await asyncio.wait_for(backend(provider, prompt, system_prompt, timeout), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ProviderError(name.value, f"no response within {timeout:.0f}s") from exc
    except _SDK_ERRORS as exc:
        raise ProviderError(name.value, str(exc)) from exc

    logger.info(
        "%s/%s completion returned %d chars in %.2fs",
        name.value,
        provider.model,
        len(text),
        time.perf_counter() - start,
    )
    logger.debug("LLM response: %s", text)
    return text


async def _gemini_model_names(api_key: str) -> list[str]:
    client = _gemini_client(api_key, config.provider_timeout())
    names = []
    async for model in await client.aio.models.list():
        if "generateContent" not in (model.supported_actions or []):
            continue
        name = (model.name or "").removeprefix("models/")
        if "gemini" in name:
            names.append(name)
    return sorted(names)


async def list_models(provider_name: str, api_key: Optional[str] = None) -> list[str]:
    """List model ids usable with ``provider_name``.

    OpenAI and Gemini are queried live and filtered to their chat model
    families; Claude returns the pinned list and needs no key.
    """

    try:
        name = ProviderName(provider_name)
    except ValueError as exc:
        raise ProviderError(str(provider_name), "unknown provider") from exc

    if name is ProviderName.CLAUDE:
        return list(CLAUDE_MODELS)
    if not api_key:
        raise ProviderError(name.value, "an API key is required to list models")

    try:
        if name is ProviderName.OPENAI:
            async with _openai_client(api_key, config.provider_timeout()) as client:
                ids = [model.id async for model in client.models.list()]
            return sorted(model_id for model_id in ids if "gpt" in model_id)
        return await _gemini_model_names(api_key)
    except _SDK_ERRORS as exc:
        raise ProviderError(name.value, str(exc)) from exc
