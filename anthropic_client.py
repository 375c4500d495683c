"""Thin wrapper around the Anthropic Messages API."""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from errors import ProviderInvocationError, ResponseFormatError
from provider_base import MAX_OUTPUT_TOKENS, REQUEST_TIMEOUT_SECONDS, AnalysisProvider

LOGGER = logging.getLogger(__name__)


class AnthropicProvider(AnalysisProvider):
    """Anthropic Messages API, direct or through an Anthropic-compatible proxy."""

    name = "Anthropic"

    def __init__(self, api_key: str, model: str, base_url: str | None = None) -> None:
        super().__init__(api_key, model, base_url)
        kwargs: dict[str, Any] = {"api_key": api_key, "timeout": REQUEST_TIMEOUT_SECONDS}
        if self.base_url:
            kwargs["base_url"] = self.base_url
            self.name = "Anthropic Proxy"
        self.client = anthropic.AsyncAnthropic(**kwargs)

    async def analyze(self, prompt: str) -> str:
        LOGGER.debug("Calling Claude model=%s max_tokens=%s", self.model, MAX_OUTPUT_TOKENS)
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=MAX_OUTPUT_TOKENS,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise ProviderInvocationError(f"Anthropic request failed: {exc}") from exc

        if not response.content:
            raise ResponseFormatError("Anthropic returned no content blocks")

        block = response.content[0]
        if getattr(block, "type", None) != "text":
            raise ResponseFormatError(
                f"Unexpected Anthropic content block type: {getattr(block, 'type', None)!r}"
            )
        if not block.text:
            raise ResponseFormatError("Anthropic returned an empty text block")
        return block.text
