"""FastAPI application entry point and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from backend.api.learner_router import router as learner_router
from backend.api.review_router import router as review_router
from backend.api.stats_router import router as stats_router
from backend.config import settings
from backend.database import async_session, engine
from backend.errors import Conflict, FlashdrillError, InvalidArgument, NotFound
from backend.models import Base
from backend.srs.deck import seed_deck

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[FlashdrillError], int] = {
    InvalidArgument: 400,
    NotFound: 404,
    Conflict: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize database and deck on startup and cleanup on shutdown."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as session:
        await seed_deck(session)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Spaced repetition flashcard drills scheduled with SM-2",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(learner_router)
app.include_router(review_router)
app.include_router(stats_router)


@app.exception_handler(FlashdrillError)
async def domain_error_handler(request: Request, exc: FlashdrillError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    if status_code == 500:
        logger.error("Unhandled domain error on %s: %s", request.url.path, exc, exc_info=exc)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Check database connectivity and return status."""
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ok"}
