"""
Otagon Companion API - FastAPI Application

Backend for the Otagon gaming companion: monthly quotas, Pro trials,
conversation tabs per game, AI chat with message routing, and the PC client
pairing relay.
"""

import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from . import database
from .api.routes import router as api_router
from .config import settings
from .exceptions import ERROR_MESSAGES, OtagonError
from .services.cache import cache_client


def configure_logging() -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        level=settings.LOG_LEVEL.upper(),
        serialize=settings.LOG_JSON,
        enqueue=True
    )


configure_logging()


# ============================================================================
# Startup & Shutdown
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""

    logger.info("Starting {} v{} ({})", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)

    await database.init_db()
    logger.info("✓ Database initialized")

    await cache_client.connect()
    if await cache_client.ping():
        logger.info("✓ Cache connected ({})", type(cache_client).__name__)
    else:
        logger.warning("Cache unreachable; conversation reads go to the database")

    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set; chat requests will fail")

    yield

    # Cleanup
    logger.info("Shutting down...")
    await cache_client.close()
    await database.engine.dispose()


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title=settings.APP_NAME,
    description="Gaming companion backend: quotas, trials, conversations and AI chat",
    version=settings.APP_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(OtagonError)
async def otagon_exception_handler(request: Request, exc: OtagonError):
    """Domain errors carry their own status code and user-facing message."""
    log = logger.warning if exc.status_code >= 500 else logger.info
    log("{} {} -> {} {}: {}", request.method, request.url.path, exc.status_code, exc.code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.exception("Unhandled exception on {} {}: {}", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "unknown", "message": ERROR_MESSAGES["unknown"], "detail": "Internal server error occurred"}
    )


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "otagon.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
