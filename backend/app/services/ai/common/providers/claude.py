"""Anthropic / Claude provider."""

from __future__ import annotations

import logging
import time

import httpx

from ..errors import UpstreamUnavailableError
from .base import BaseProvider, ProviderResult

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-5"


class ClaudeProvider(BaseProvider):
    name = "claude"

    def __init__(
        self,
        api_key: str,
        *,
        api_version: str = "2023-06-01",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_version = api_version
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
        model = model or DEFAULT_CLAUDE_MODEL
        t0 = time.monotonic()

        body = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

        try:
            async with httpx.AsyncClient(timeout=timeout_seconds, transport=self._transport) as client:
                resp = await client.post(
                    ANTHROPIC_API_URL,
                    headers={
                        "x-api-key": self._api_key,
                        "anthropic-version": self._api_version,
                        "content-type": "application/json",
                    },
                    json=body,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Claude API returned status %s", exc.response.status_code)
            raise UpstreamUnavailableError("AI service error") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Claude API request failed: %s", exc)
            raise UpstreamUnavailableError("AI service error") from exc

        elapsed = (time.monotonic() - t0) * 1000
        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            raise UpstreamUnavailableError("AI service returned no completion")
        # Only text blocks carry completion text.
        text = "".join(
            block["text"]
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        )
        usage = data.get("usage") or {}

        return ProviderResult(
            raw_text=text,
            model=model,
            provider=self.name,
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            latency_ms=round(elapsed, 2),
        )
