"""
HTTP surface for the web client.

Auth endpoints always answer 200 with either `{"error": ...}` or
`{"success": true, ...}`; `/user` additionally uses `{"loggedIn": false}` for
the logged-out state.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from identity.auth.config import AuthConfig, load_auth_config
from identity.auth.errors import GENERIC_ERROR_MESSAGE, AuthError
from identity.auth.models import AuthResult, UserAccount
from identity.auth.resolver import AccountResolver
from identity.auth.session import SESSION_COOKIE_NAME, clear_session_cookie_kwargs, session_cookie_kwargs
from identity.storage.store import StoreError

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class GoogleLoginRequest(BaseModel):
    token: Optional[str] = None


def user_profile(user: UserAccount) -> Dict[str, Any]:
    return {
        "id": user.user_id,
        "email": user.email,
        "emailVerified": bool(user.email_verified),
        "firstName": user.first_name,
        "lastName": user.last_name,
    }


def _error(message: str) -> JSONResponse:
    return JSONResponse(content={"error": message})


def _success(cfg: AuthConfig, result: AuthResult) -> JSONResponse:
    resp = JSONResponse(content={"success": True, "token": result.credential, "user": user_profile(result.user)})
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, result.credential))
    return resp


def _build_resolver_from_env() -> AccountResolver:
    from identity.auth.google import GoogleIdentityVerifier
    from identity.auth.session import SessionManager
    from identity.storage.config import load_store_config
    from identity.storage.store import PostgresCredentialStore

    cfg = load_auth_config()
    store = PostgresCredentialStore.from_config(load_store_config())
    store.open()
    return AccountResolver(
        store=store,
        verifier=GoogleIdentityVerifier.from_config(cfg),
        sessions=SessionManager(store, token_length=cfg.session_token_length),
    )


def create_app(
    resolver: Optional[AccountResolver] = None,
    *,
    config: Optional[AuthConfig] = None,
) -> FastAPI:
    """
    Build the API app.

    With no resolver, one is wired from the environment (Postgres pool +
    Google verifier) on startup and the pool is closed on shutdown.
    """
    cfg = config or load_auth_config()
    app = FastAPI(title="Identity service")
    app.state.resolver = resolver

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup_wire_resolver() -> None:
        if app.state.resolver is not None:
            return
        from identity.storage.migrate import maybe_auto_migrate

        did_attempt, msg = maybe_auto_migrate()
        if did_attempt:
            logger.info("DB migrations: %s", msg)
        try:
            app.state.resolver = _build_resolver_from_env()
        except Exception as e:
            # Auth endpoints answer with the generic error while no resolver is wired.
            logger.error("Credential store unavailable at startup: %s", str(e))
            return
        logger.info(
            "Auth config: google_enabled=%s allowed_origins=%s cookie_secure=%s",
            cfg.google_enabled,
            ",".join(cfg.allowed_origins),
            cfg.cookie_secure,
        )

    @app.on_event("shutdown")
    def _shutdown_close_store() -> None:
        if resolver is None and app.state.resolver is not None:
            app.state.resolver.store.close()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            raise
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response

    def _run(label: str, op: Callable[[AccountResolver], AuthResult]) -> JSONResponse:
        resolver_ = app.state.resolver
        if resolver_ is None:
            logger.error("%s failed: credential store is not wired", label)
            return _error(GENERIC_ERROR_MESSAGE)
        try:
            return _success(cfg, op(resolver_))
        except AuthError as e:
            return _error(e.message)
        except StoreError:
            logger.exception("%s failed: credential store error", label)
            return _error(GENERIC_ERROR_MESSAGE)
        except Exception:
            logger.exception("%s caused error", label)
            return _error(GENERIC_ERROR_MESSAGE)

    @app.get("/status")
    def status() -> Dict[str, Any]:
        return {"status": "OK"}

    @app.post("/login")
    def login(body: LoginRequest) -> JSONResponse:
        return _run("Email login", lambda r: r.login(body.email, body.password))

    @app.post("/register")
    def register(body: RegisterRequest) -> JSONResponse:
        return _run(
            "Email registration",
            lambda r: r.register(body.firstName, body.lastName, body.email, body.password),
        )

    @app.post("/google-login")
    def google_login(body: GoogleLoginRequest) -> JSONResponse:
        return _run("Google login", lambda r: r.google_login(body.token))

    @app.get("/user")
    def current_user(request: Request) -> JSONResponse:
        credential = request.cookies.get(SESSION_COOKIE_NAME)
        if not credential:
            return JSONResponse(content={"loggedIn": False})
        if app.state.resolver is None:
            logger.error("Session lookup failed: credential store is not wired")
            return _error(GENERIC_ERROR_MESSAGE)
        try:
            check = app.state.resolver.identify(credential)
        except AuthError as e:
            return _error(e.message)
        except Exception:
            logger.exception("Session lookup caused error")
            return _error(GENERIC_ERROR_MESSAGE)

        if check.logged_in and check.user is not None:
            return JSONResponse(content={"loggedIn": True, "user": user_profile(check.user)})

        content: Dict[str, Any] = {"loggedIn": False}
        if check.error:
            content["error"] = check.error
        resp = JSONResponse(content=content)
        if check.clear_credential:
            resp.set_cookie(**clear_session_cookie_kwargs(cfg))
        return resp

    return app


def run(host: str = "0.0.0.0", port: int = 3001) -> None:
    import uvicorn

    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting identity server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(create_app(), host=host, port=port, log_level=uvicorn_log_level)
