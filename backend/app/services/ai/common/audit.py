"""AI audit: one structured log line per completed model call."""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from app.core.config import get_settings

from .providers.base import ProviderResult

logger = logging.getLogger(__name__)

# Scope-dependent audit actions. Falls back to "AI_RUN" for unknown scopes.
SCOPE_ACTIONS: dict[str, str] = {
    "anomalies": "AI_ANOMALIES_ANALYZED",
    "digest": "AI_WEEKLY_DIGEST_GENERATED",
}


def build_ai_run_metadata(
    *,
    scope: str,
    provider_result: ProviderResult,
    prompt_text: str,
    extra_meta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Return the audit payload for one model call.

    PII: prompt and response are always hashed; raw text is only included when
    ``AI_DEBUG_STORE_RAW=true``.
    """
    settings = get_settings()

    metadata: dict[str, Any] = {
        "action": SCOPE_ACTIONS.get(scope, "AI_RUN"),
        "scope": scope,
        "provider": provider_result.provider,
        "model": provider_result.model,
        "prompt_tokens": provider_result.prompt_tokens,
        "completion_tokens": provider_result.completion_tokens,
        "latency_ms": provider_result.latency_ms,
        "prompt_hash": hashlib.sha256(prompt_text.encode()).hexdigest(),
        "response_hash": hashlib.sha256(provider_result.raw_text.encode()).hexdigest(),
    }

    if settings.ai_debug_store_raw:
        metadata["prompt_raw"] = prompt_text
        metadata["response_raw"] = provider_result.raw_text

    if extra_meta:
        metadata.update(extra_meta)
    return metadata


def log_ai_run(
    *,
    scope: str,
    provider_result: ProviderResult,
    prompt_text: str,
    extra_meta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    metadata = build_ai_run_metadata(
        scope=scope,
        provider_result=provider_result,
        prompt_text=prompt_text,
        extra_meta=extra_meta,
    )
    logger.info("%s %s", metadata["action"], metadata)
    return metadata
