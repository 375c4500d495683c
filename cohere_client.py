"""Cohere Chat REST client."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import requests

from errors import ProviderInvocationError, ResponseFormatError
from provider_base import MAX_OUTPUT_TOKENS, REQUEST_TIMEOUT_SECONDS, AnalysisProvider

COHERE_API_BASE_URL = "https://api.cohere.com/v1"

LOGGER = logging.getLogger(__name__)


class CohereProvider(AnalysisProvider):
    name = "Cohere"

    async def analyze(self, prompt: str) -> str:
        body = await asyncio.to_thread(self._call_cohere, prompt)
        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise ResponseFormatError(f"Unexpected Cohere response shape: {body}")
        if not text:
            raise ResponseFormatError("Cohere returned an empty response")
        return text

    def _call_cohere(self, prompt: str) -> Any:
        url = f"{(self.base_url or COHERE_API_BASE_URL).rstrip('/')}/chat"
        payload = {
            "model": self.model,
            "message": prompt,
            "max_tokens": MAX_OUTPUT_TOKENS,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        LOGGER.debug("Calling Cohere model=%s", self.model)
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as exc:
            detail = ""
            if isinstance(exc, requests.HTTPError) and exc.response is not None:
                try:
                    detail = f" {json.dumps(exc.response.json())}"
                except ValueError:
                    detail = f" {exc.response.text}"
            raise ProviderInvocationError(f"Cohere request failed: {exc}{detail}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ResponseFormatError("Cohere returned a non-JSON body") from exc
