"""Google Generative Language (Gemini) REST client."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import requests

from errors import ProviderInvocationError, ResponseFormatError
from provider_base import MAX_OUTPUT_TOKENS, REQUEST_TIMEOUT_SECONDS, AnalysisProvider

GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

LOGGER = logging.getLogger(__name__)


class GeminiProvider(AnalysisProvider):
    """Calls models/{model}:generateContent; the HTTP call runs in a worker thread."""

    name = "Google"

    def __init__(self, api_key: str, model: str, base_url: str | None = None) -> None:
        super().__init__(api_key, model, base_url)
        if self.base_url:
            self.name = "Google Proxy"

    async def analyze(self, prompt: str) -> str:
        body = await asyncio.to_thread(self._call_gemini, prompt)
        return _extract_text(body)

    def _call_gemini(self, prompt: str) -> dict[str, Any]:
        base = (self.base_url or GEMINI_API_BASE_URL).rstrip("/")
        url = f"{base}/models/{self.model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": MAX_OUTPUT_TOKENS},
        }
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

        LOGGER.debug("Calling Gemini model=%s url=%s", self.model, url)
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ProviderInvocationError(f"Gemini request failed: {exc}{_error_detail(exc)}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ResponseFormatError("Gemini returned a non-JSON body") from exc


def _extract_text(body: Any) -> str:
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ResponseFormatError(f"Unexpected Gemini response shape: {body}") from exc

    text = "".join(p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str))
    if not text:
        raise ResponseFormatError("Gemini response contained no text parts")
    return text


def _error_detail(exc: requests.RequestException) -> str:
    if not isinstance(exc, requests.HTTPError) or exc.response is None:
        return ""
    try:
        return f" {json.dumps(exc.response.json())}"
    except ValueError:
        return f" {exc.response.text}"
