"""OpenAI-compatible chat completions gateway provider."""

from __future__ import annotations

import logging
import time

import httpx

from ..errors import UpstreamUnavailableError
from .base import BaseProvider, ProviderResult

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_MODEL = "google/gemini-3-flash-preview"


class GatewayProvider(BaseProvider):
    name = "gateway"

    def __init__(
        self,
        api_key: str,
        *,
        url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._url = url
        self._transport = transport

    async def generate(
        self,
        prompt: str,
        *,
        model: str = "",
        temperature: float = 0.2,
        max_tokens: int = 1024,
        timeout_seconds: float = 30.0,
    ) -> ProviderResult:
        model = model or DEFAULT_GATEWAY_MODEL
        t0 = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=timeout_seconds, transport=self._transport) as client:
                resp = await client.post(
                    self._url,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": model,
                        "max_tokens": max_tokens,
                        "temperature": temperature,
                        "messages": [{"role": "user", "content": prompt}],
                    },
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("AI gateway returned status %s", exc.response.status_code)
            raise UpstreamUnavailableError("AI service error") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("AI gateway request failed: %s", exc)
            raise UpstreamUnavailableError("AI service error") from exc

        elapsed = (time.monotonic() - t0) * 1000
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise UpstreamUnavailableError("AI service returned no completion") from exc
        if not isinstance(text, str):
            raise UpstreamUnavailableError("AI service returned no completion")
        usage = data.get("usage") or {}

        return ProviderResult(
            raw_text=text,
            model=model,
            provider=self.name,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            latency_ms=round(elapsed, 2),
        )
