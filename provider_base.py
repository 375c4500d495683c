"""Common interface for the AI backends that classify repositories."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod

MAX_OUTPUT_TOKENS = int(os.getenv("ANALYZE_MAX_TOKENS", "4000"))
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "120"))


class AnalysisProvider(ABC):
    """One vendor wire protocol behind a single text-in, text-out call.

    Implementations:
        - AnthropicProvider: Anthropic Messages API
        - OpenAIChatProvider: OpenAI Chat Completions (and compatible gateways)
        - GeminiProvider: Google Generative Language REST API
        - CohereProvider: Cohere Chat REST API

    Variants never retry and never return an empty string: a failed call
    raises ProviderInvocationError, an unusable reply raises ResponseFormatError.
    """

    name: str = "base"

    def __init__(self, api_key: str, model: str, base_url: str | None = None) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url or None

    @abstractmethod
    async def analyze(self, prompt: str) -> str:
        """Send prompt as a single user message and return the reply text."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, model={self.model!r}, base_url={self.base_url!r})"
