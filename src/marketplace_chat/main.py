# src/marketplace_chat/main.py
"""Main entry point for the marketplace chat service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from marketplace_chat.api.v1 import (
    broadcast_router,
    conversations_router,
    messages_router,
    push_router,
    replies_router,
)
from marketplace_chat.core.settings import settings
from marketplace_chat.db.session import create_tables
from marketplace_chat.services.broadcast import broadcast_enabled, get_broadcast_client
from marketplace_chat.services.errors import MessagingError

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Real-time buyer and seller messaging API",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.add_middleware(GZipMiddleware)

app.include_router(messages_router, prefix="/api/v1")
app.include_router(replies_router, prefix="/api/v1")
app.include_router(conversations_router, prefix="/api/v1")
app.include_router(broadcast_router, prefix="/api/v1")
app.include_router(push_router, prefix="/api/v1")


@app.exception_handler(MessagingError)
async def messaging_error_handler(request: Request, exc: MessagingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.detail},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "detail": "Internal server error"},
    )


@app.on_event("startup")
async def on_startup() -> None:
    if settings.effective_database_url.startswith("sqlite"):
        # Local development databases are created on demand; others use Alembic.
        create_tables()
    if not broadcast_enabled():
        logger.warning("Broadcast credentials missing; live updates are disabled")
    if not settings.push_configured:
        logger.info("VAPID keys missing; push notifications are disabled")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if broadcast_enabled():
        await get_broadcast_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
    uvicorn.run("marketplace_chat.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
