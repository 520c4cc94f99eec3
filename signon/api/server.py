"""
Sign-on HTTP server.

`GET /` returns the logged-in user's profile, or redirects to Google's consent page.
`GET /google/callback` completes the Authorization Code flow and sets the session cookie.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from signon.auth.config import AuthConfig, load_auth_config
from signon.auth.google import ProviderError, build_authorize_url
from signon.auth.login import complete_login, resolve_session_user
from signon.auth.session import SESSION_COOKIE_NAME, session_cookie_kwargs
from signon.store.sessions import SessionIntegrityError, SessionStore, SessionSweeper
from signon.store.users import UserStore

logger = logging.getLogger(__name__)


def _stores(request: Request) -> Tuple[UserStore, SessionStore]:
    users = getattr(request.app.state, "users", None)
    sessions = getattr(request.app.state, "sessions", None)
    if users is None or sessions is None:
        raise HTTPException(status_code=500, detail="Session store is not initialized")
    return users, sessions


def _auth_config(request: Request) -> AuthConfig:
    return request.app.state.auth_cfg


def create_app(
    cfg: Optional[AuthConfig] = None,
    *,
    users: Optional[UserStore] = None,
    sessions: Optional[SessionStore] = None,
) -> FastAPI:
    """
    Build the application.

    Stores may be injected (tests, embedding); otherwise a Postgres-backed `Database`
    is opened on startup and closed on shutdown.
    """
    app = FastAPI(title="Sign-on")
    app.state.auth_cfg = cfg or load_auth_config()
    app.state.users = users
    app.state.sessions = sessions
    app.state.db = None
    app.state.sweeper = None

    @app.on_event("startup")
    def _startup_open_store() -> None:
        if app.state.users is not None and app.state.sessions is not None:
            return

        from signon.store.config import load_store_config
        from signon.store.db import Database
        from signon.store.migrate import maybe_auto_migrate

        store_cfg = load_store_config()
        did_attempt, msg = maybe_auto_migrate(store_cfg)
        if did_attempt:
            logger.info("DB migrations: %s", msg)

        # Avoid logging secrets; host/db/user are fine.
        logger.info(
            "Store config: postgres_host=%s postgres_db=%s postgres_user=%s pool=%d..%d",
            store_cfg.postgres_host,
            store_cfg.postgres_db,
            store_cfg.postgres_user,
            store_cfg.pool_min_size,
            store_cfg.pool_max_size,
        )

        db = Database.from_config(store_cfg)
        db.open()
        auth_cfg: AuthConfig = app.state.auth_cfg
        app.state.db = db
        app.state.users = UserStore(db)
        app.state.sessions = SessionStore(db, ttl_seconds=auth_cfg.session_ttl_seconds)

        sweeper = SessionSweeper(app.state.sessions, interval_seconds=auth_cfg.sweep_interval_seconds)
        sweeper.start()
        app.state.sweeper = sweeper

    @app.on_event("shutdown")
    def _shutdown_close_store() -> None:
        if app.state.sweeper is not None:
            app.state.sweeper.stop()
            app.state.sweeper = None
        if app.state.db is not None:
            app.state.db.close()
            app.state.db = None

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        logger.debug("%s %s", request.method, request.url.path)
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            raise

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    @app.get("/")
    def index(request: Request):
        """Return the current user, or start the Google login flow."""
        cfg = _auth_config(request)
        users_store, sessions_store = _stores(request)

        try:
            user = resolve_session_user(cfg, users_store, sessions_store, request.cookies.get(SESSION_COOKIE_NAME))
        except SessionIntegrityError:
            logger.exception("Session resolves to a missing user")
            raise HTTPException(status_code=500, detail="Internal server error")

        if user is not None:
            resp = JSONResponse(content=user.to_json())
            resp.headers["Cache-Control"] = "no-store"
            return resp

        if not cfg.google_client_id:
            raise HTTPException(status_code=500, detail="GOOGLE_CLIENT_ID is required for login")

        resp = RedirectResponse(url=build_authorize_url(cfg), status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @app.get("/google/callback")
    def google_callback(request: Request, code: Optional[str] = Query(None)):
        """Handle Google's redirect after the user grants consent."""
        cfg = _auth_config(request)
        code = (code or "").strip()
        if not code:
            raise HTTPException(status_code=400, detail="Missing authorization code")

        if not cfg.cookie_secret:
            raise HTTPException(status_code=500, detail="Session signing is not configured (COOKIE_SECRET)")

        users_store, sessions_store = _stores(request)
        try:
            session_value = complete_login(cfg, users_store, sessions_store, code=code)
        except ProviderError as e:
            logger.error("Google login failed: %s", str(e))
            raise HTTPException(status_code=500, detail="Login with Google failed")

        resp = RedirectResponse(url="/", status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        resp.set_cookie(**session_cookie_kwargs(cfg, session_value))
        return resp

    return app


def run(host: str = "0.0.0.0", port: int = 3000) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # basicConfig is a no-op once main.py has configured the root logger.
    logging.getLogger().setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    app = create_app()
    if not app.state.auth_cfg.cookie_secret:
        logger.warning("COOKIE_SECRET is not set; logins will fail until it is configured")

    logger.info("Starting sign-on server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
