"""OpenAI Chat Completions client, also used for OpenAI-compatible endpoints."""

from __future__ import annotations

import logging
from typing import Any

from openai import APIError, AsyncOpenAI

from errors import ProviderInvocationError, ResponseFormatError
from provider_base import MAX_OUTPUT_TOKENS, REQUEST_TIMEOUT_SECONDS, AnalysisProvider

LOGGER = logging.getLogger(__name__)


class OpenAIChatProvider(AnalysisProvider):
    """Chat Completions over AsyncOpenAI.

    Covers OpenAI itself plus every vendor that speaks the same wire format
    (DeepSeek, custom gateways, OpenAI-compatible builtin proxies); only the
    base URL differs.
    """

    name = "OpenAI"

    def __init__(self, api_key: str, model: str, base_url: str | None = None) -> None:
        super().__init__(api_key, model, base_url)
        kwargs: dict[str, Any] = {"api_key": api_key, "timeout": REQUEST_TIMEOUT_SECONDS}
        if self.base_url:
            kwargs["base_url"] = self.base_url
            self.name = "OpenAI-compatible"
        self.client = AsyncOpenAI(**kwargs)

    async def analyze(self, prompt: str) -> str:
        LOGGER.debug("Calling %s model=%s base_url=%s", self.name, self.model, self.base_url)
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=MAX_OUTPUT_TOKENS,
                messages=[{"role": "user", "content": prompt}],
            )
        except APIError as exc:
            raise ProviderInvocationError(f"{self.name} request failed: {exc}") from exc

        if not response.choices:
            raise ResponseFormatError(f"{self.name} returned no choices")

        content = response.choices[0].message.content
        if not content:
            raise ResponseFormatError(f"{self.name} returned an empty response")
        return content
