"""Provider factory: returns the configured provider instance."""

from __future__ import annotations

import logging

from app.core.config import get_settings

from ..errors import UpstreamUnavailableError
from .base import BaseProvider, ProviderResult
from .mock import MockProvider

logger = logging.getLogger(__name__)

__all__ = ["get_provider", "BaseProvider", "ProviderResult", "MockProvider"]


def get_provider(provider_name: str) -> BaseProvider:
    """Return a provider instance for *provider_name*.

    Raises ``UpstreamUnavailableError`` when the provider is not allowlisted,
    unknown, or has no API key.
    """
    settings = get_settings()
    name = provider_name.lower().strip()

    if name not in settings.ai_allowed_providers:
        logger.warning("Provider %r not in allowlist", name)
        raise UpstreamUnavailableError(f"AI provider {name!r} is not allowed")

    if name == "mock":
        return MockProvider()

    if name == "gateway":
        if not settings.ai_gateway_api_key:
            raise UpstreamUnavailableError("LOVABLE_API_KEY not configured")
        from .gateway import GatewayProvider

        return GatewayProvider(api_key=settings.ai_gateway_api_key, url=settings.ai_gateway_url)

    if name == "claude":
        if not settings.anthropic_api_key:
            raise UpstreamUnavailableError("ANTHROPIC_API_KEY not configured")
        from .claude import ClaudeProvider

        return ClaudeProvider(api_key=settings.anthropic_api_key, api_version=settings.anthropic_version)

    logger.warning("Unknown provider %r", name)
    raise UpstreamUnavailableError(f"AI provider {name!r} is not supported")
