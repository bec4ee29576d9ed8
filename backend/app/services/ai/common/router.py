"""AI Router: resolves provider + generation parameters for a pipeline scope."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.core.config import get_settings

from .providers import BaseProvider, ProviderResult, get_provider

logger = logging.getLogger(__name__)

# Scope-specific output budgets; anything else uses AI_MAX_TOKENS.
SCOPE_MAX_TOKENS: dict[str, int] = {
    "anomalies": 1024,
    "digest": 1024,
}


@dataclass(frozen=True)
class ModelInstruction:
    """Rendered prompt plus generation parameters for a single model call."""

    prompt: str
    max_tokens: int
    temperature: float


@dataclass(frozen=True)
class ResolvedConfig:
    """Final resolved provider + model for one scope."""

    provider: BaseProvider
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: float

    def instruct(self, prompt: str) -> ModelInstruction:
        return ModelInstruction(prompt=prompt, max_tokens=self.max_tokens, temperature=self.temperature)


async def complete(config: ResolvedConfig, instruction: ModelInstruction) -> ProviderResult:
    """Single model round trip; provider failures propagate unchanged."""
    return await config.provider.generate(
        instruction.prompt,
        model=config.model,
        temperature=instruction.temperature,
        max_tokens=instruction.max_tokens,
        timeout_seconds=config.timeout_seconds,
    )


def resolve(scope: str) -> ResolvedConfig:
    """Resolve provider + model for a given *scope*.

    Provider and model come from ``AI_PROVIDER`` / ``AI_MODEL``; an empty model
    lets the provider pick its default. ``max_tokens`` is the smaller of the
    scope budget and ``AI_MAX_TOKENS``.
    """
    settings = get_settings()

    provider = get_provider(settings.ai_provider)
    max_tokens = min(SCOPE_MAX_TOKENS.get(scope, settings.ai_max_tokens), settings.ai_max_tokens)

    logger.debug("AI scope %s resolved to %s:%s", scope, provider.name, settings.ai_model or "default")

    return ResolvedConfig(
        provider=provider,
        model=settings.ai_model.strip(),
        temperature=settings.ai_temperature,
        max_tokens=max_tokens,
        timeout_seconds=settings.ai_timeout_seconds,
    )
