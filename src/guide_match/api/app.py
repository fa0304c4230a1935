"""FastAPI application for the guide-match API."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from guide_match.api.deps import get_token_codec
from guide_match.api.routes.health import router as health_router
from guide_match.api.routes.matches import router as matches_router
from guide_match.api.routes.requests import router as requests_router
from guide_match.api.routes.reviews import router as reviews_router
from guide_match.config.settings import get_settings
from guide_match.db.session import close_sessions
from guide_match.errors import GuideMatchError, ValidationError
from guide_match.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    # Build the codec now so a missing or short secret stops the process
    get_token_codec()
    logger.info("api_starting", database=settings.database_url.split("@")[-1])
    yield
    await close_sessions()


app = FastAPI(title="Guide Match API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().app_base_url],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(GuideMatchError)
async def guide_match_error_handler(request: Request, exc: GuideMatchError) -> JSONResponse:
    """Collapse domain errors to their public category; detail stays in the log."""
    logger.warning(
        "request_rejected",
        path=request.url.path,
        category=exc.category,
        error_type=type(exc).__name__,
        detail=str(exc),
    )
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.category, "message": exc.public_message},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Default 422 bodies echo the submitted input, which may be a token
    logger.warning("request_rejected", path=request.url.path, category=ValidationError.category)
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"error": ValidationError.category, "message": ValidationError.public_message},
    )


app.include_router(health_router)
app.include_router(matches_router)
app.include_router(requests_router)
app.include_router(reviews_router)
