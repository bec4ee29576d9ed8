"""Mock provider: replays a canned completion for tests and local runs."""

from __future__ import annotations

from .base import BaseProvider, ProviderResult


class MockProvider(BaseProvider):
    """Returns *raw_text* for every call and keeps the prompts it was sent."""

    name = "mock"

    def __init__(self, raw_text: str = "[]") -> None:
        self.raw_text = raw_text
        self.prompts: list[str] = []

    async def generate(
        self,
        prompt: str,
        *,
        model: str = "",
        temperature: float = 0.2,
        max_tokens: int = 1024,
        timeout_seconds: float = 30.0,
    ) -> ProviderResult:
        self.prompts.append(prompt)
        return ProviderResult(
            raw_text=self.raw_text,
            model=model or "mock-v1",
            provider=self.name,
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(self.raw_text.split()),
        )
