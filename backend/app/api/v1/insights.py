"""AI insight endpoints: anomaly analysis and weekly digest.

Both endpoints take ``{"account_id": ...}`` and answer with JSON plus
permissive CORS headers. Any pipeline failure becomes a 500
``{"error": message}`` envelope.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings
from app.core.dependencies import get_session_factory
from app.services.ai.anomalies.service import analyze_anomalies
from app.services.ai.common.errors import InsightError, InvalidRequestError
from app.services.ai.digest.service import generate_weekly_digest

logger = logging.getLogger(__name__)

router = APIRouter()

ANOMALIES_PIPELINE = "analyze-anomalies"
DIGEST_PIPELINE = "weekly-digest"


class InsightRequest(BaseModel):
    account_id: str = Field(..., min_length=1)

    @field_validator("account_id", mode="before")
    @classmethod
    def _numeric_id_as_text(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


def cors_headers() -> dict[str, str]:
    settings = get_settings()
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": ", ".join(settings.cors_allow_headers),
    }


async def read_account_id(request: Request) -> str:
    """Parse the body; raises ``InvalidRequestError`` before any backend is touched."""
    try:
        body = await request.json()
    except ValueError as exc:
        raise InvalidRequestError("account_id required") from exc
    if not isinstance(body, dict):
        raise InvalidRequestError("account_id required")
    try:
        payload = InsightRequest.model_validate(body)
    except ValidationError as exc:
        raise InvalidRequestError("account_id required") from exc
    account_id = payload.account_id.strip()
    if not account_id:
        raise InvalidRequestError("account_id required")
    return account_id


def error_response(pipeline: str, account_id: Optional[str], exc: Exception) -> JSONResponse:
    if isinstance(exc, InsightError):
        logger.warning("%s failed for account=%s: %s", pipeline, account_id, exc)
        message = str(exc)
    else:
        logger.exception("%s error for account=%s", pipeline, account_id)
        message = str(exc) or "Unknown error"
    return JSONResponse(status_code=500, content={"error": message}, headers=cors_headers())


def json_response(content: Any) -> JSONResponse:
    return JSONResponse(status_code=200, content=content, headers=cors_headers())


@router.options(f"/{ANOMALIES_PIPELINE}")
@router.options(f"/{DIGEST_PIPELINE}")
async def insights_preflight() -> Response:
    return Response(status_code=200, headers=cors_headers())


@router.post(f"/{ANOMALIES_PIPELINE}", summary="Detect transaction anomalies and store them as insights")
async def analyze_anomalies_endpoint(
    request: Request,
    session_factory: Optional[sessionmaker] = Depends(get_session_factory),
):
    account_id: Optional[str] = None
    try:
        account_id = await read_account_id(request)
        result = await analyze_anomalies(account_id, session_factory)
    except Exception as exc:
        return error_response(ANOMALIES_PIPELINE, account_id, exc)

    content = result.model_dump(mode="json")
    if content.get("message") is None:
        content.pop("message", None)
    return json_response(content)


@router.post(f"/{DIGEST_PIPELINE}", summary="Generate the weekly financial digest")
async def weekly_digest_endpoint(
    request: Request,
    session_factory: Optional[sessionmaker] = Depends(get_session_factory),
):
    account_id: Optional[str] = None
    try:
        account_id = await read_account_id(request)
        digest = await generate_weekly_digest(account_id, session_factory)
    except Exception as exc:
        return error_response(DIGEST_PIPELINE, account_id, exc)

    return json_response(digest.model_dump(mode="json"))
