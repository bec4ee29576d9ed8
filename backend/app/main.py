import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v1.insights import cors_headers
from app.api.v1.insights import router as insights_router
from app.core.config import get_settings

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Float Insights API",
    version="1.0.0",
)


@app.on_event("startup")
async def _startup_jobs():
    current = get_settings()
    errors = current.validate_required_config()
    if not errors:
        return
    if current.is_production:
        raise RuntimeError(
            "Configuration validation failed in production environment: " + "; ".join(errors)
        )
    for error in errors:
        logger.warning("Configuration problem: %s", error)


app.include_router(insights_router, prefix="/api/v1", tags=["insights"])


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown error"}, headers=cors_headers())


@app.get("/health")
async def health_check():
    return {"status": "ok"}
