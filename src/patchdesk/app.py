"""FastAPI application factory with lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .config import AppConfig, load_config
from .errors import Unauthorized
from .services.ai_service import AIService
from .services.auth_client import AuthClient
from .services.session_gate import SessionGate, SessionVerifier, login_redirect_url, requires_session
from .tools import create_default_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        "Serving model %s with %d tools",
        app.state.config.ai.model,
        len(app.state.tool_registry.list_tools()),
    )

    yield

    try:
        await app.state.ai_service.aclose()
    finally:
        await app.state.auth_client.aclose()


class SessionRedirectMiddleware(BaseHTTPMiddleware):
    """Redirect page requests without a session to the login page.

    Auth pages, API routes and static assets pass through; API routes check
    the session themselves and answer 401 instead of redirecting.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not requires_session(path):
            return await call_next(request)
        try:
            await request.app.state.session_gate.authorize(request.headers)
        except Unauthorized:
            return RedirectResponse(login_redirect_url(path), status_code=307)
        return await call_next(request)


def create_app(
    config: AppConfig | None = None,
    *,
    ai_service: AIService | None = None,
    auth_client: AuthClient | None = None,
    session_verifier: SessionVerifier | None = None,
) -> FastAPI:
    if config is None:
        config = load_config()

    app = FastAPI(title="Patchdesk", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.ai_service = ai_service or AIService(config.ai)
    app.state.auth_client = auth_client or AuthClient(config.auth)
    app.state.session_gate = SessionGate(session_verifier or app.state.auth_client.get_session)
    app.state.tool_registry = create_default_registry()

    app.add_middleware(SessionRedirectMiddleware)

    from .routers import auth, chat

    app.include_router(chat.router, prefix="/api")
    app.include_router(auth.router, prefix="/auth")

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app
