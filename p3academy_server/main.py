# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""P3 Academy Server - Main FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from p3academy_server.config import Settings, settings
from p3academy_server.database import async_session_maker, init_db
from p3academy_server.errors import register_exception_handlers
from p3academy_server.routers import admin, auth
from p3academy_server.services.email import build_notifier
from p3academy_server.services.password_reset import PasswordResetService
from p3academy_server.services.reset_tokens import ResetTokenStore

logger = logging.getLogger(__name__)


def _get_cors_origins() -> list[str]:
    raw = (settings.cors_origins or "*").strip()
    if raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def build_password_reset_service(config: Settings = settings) -> PasswordResetService:
    """Wire the reset service from settings. Called once per process."""
    return PasswordResetService(
        session_maker=async_session_maker,
        store=ResetTokenStore(ttl=timedelta(minutes=config.reset_token_ttl_minutes)),
        notifier=build_notifier(config),
        client_base_url=config.client_base_url,
        revoke_other_tokens=config.reset_revoke_other_tokens,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db()
    app.state.password_reset = build_password_reset_service()
    if settings.jwt_secret == "change-me-in-production":
        logger.warning("JWT_SECRET is the default value - set it before deploying")
    yield


app = FastAPI(
    title="P3 Academy Server",
    description="Pharmacy pre-registration training API: accounts, sessions and password reset",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status, and duration for each request (no body or auth headers)."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response


app.include_router(auth.router, prefix="/api")
app.include_router(admin.router, prefix="/api")


@app.get("/api/health")
async def health():
    """Health check for load balancers."""
    return {"status": "ok"}


def run() -> None:
    """Serve the app with uvicorn on HOST:PORT."""
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
