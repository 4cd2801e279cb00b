"""Molt-Guard FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - / and /health — delegated to moltguard/health.py
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()               → app.state.config
  2. create_http_client()        → app.state.http_client
  3. resolve_backend_url()       → backend URL from the secret store (optional)
  4. PolicyEngine / RedactionPipeline / forwarder / BackendModels → app.state
  5. Guard model provisioning    → background task (remote mode + auto_pull)
  6. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → cancel provisioning → close HTTP client
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from moltguard.backend.client import create_http_client
from moltguard.backend.models import BackendModels
from moltguard.config import Config, load_config
from moltguard.errors import GatewayError
from moltguard.health import router as health_router
from moltguard.models.block import build_error_response
from moltguard.models.policy import ValidationMode
from moltguard.policy.engine import PolicyEngine
from moltguard.proxy.engine import fallback_router, router as proxy_router
from moltguard.proxy.forwarder import ReverseProxyForwarder
from moltguard.proxy.interceptor import RequestInterceptor
from moltguard.proxy.middleware import RequestContextMiddleware
from moltguard.scanner.redaction import RedactionPipeline
from moltguard.utils.logger import configure_logging, get_logger, get_request_id
from moltguard.vault import resolve_backend_url

# ─── Logging Setup ────────────────────────────────────────────────────────────
# Configure logging at module import time (before any other imports that may log).
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True.

    All proxy routes consume this dependency; /health does not.
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "Molt-Guard is starting up.",
            },
        )


# ─── Provisioning ─────────────────────────────────────────────────────────────


def start_provisioning(
    config: Config, backend_models: BackendModels
) -> Optional[asyncio.Task[bool]]:
    """Pull the guard model in the background when remote mode needs it.

    Never delays readiness; the classifier answers 503 until the pull lands.
    """
    if config.policy.mode != ValidationMode.REMOTE or not config.backend.auto_pull:
        return None
    logger.info("guard_model_provisioning_started", guard_model=config.policy.guard_model)
    return asyncio.create_task(
        backend_models.ensure_model_exists(config.policy.guard_model)
    )


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Molt-Guard starting up...")

    # ── Step 1: Configuration ────────────────────────────────────────────────
    # Raises SystemExit(1) on invalid config; the process refuses to start.
    config: Config = load_config()

    # ── Step 2: Shared HTTP client ───────────────────────────────────────────
    # One client for the process lifetime, stored in app.state.http_client.
    http_client: httpx.AsyncClient = create_http_client(config.backend.timeout_s)
    app.state.http_client = http_client
    logger.info("HTTP backend client created", timeout_s=config.backend.timeout_s)

    # ── Step 3: Backend URL from the secret store ────────────────────────────
    config = await resolve_backend_url(config, http_client)
    app.state.config = config

    # ── Step 4: Gateway components ───────────────────────────────────────────
    policy_engine = PolicyEngine.from_settings(
        mode=config.policy.mode,
        sensitivity=config.policy.sensitivity,
        guard_model=config.policy.guard_model,
        base_url=config.backend.url,
        http_client=http_client,
    )
    app.state.policy_engine = policy_engine
    app.state.interceptor = RequestInterceptor(policy_engine)
    app.state.redaction = RedactionPipeline.default()
    app.state.forwarder = ReverseProxyForwarder(http_client, config.backend.url)
    backend_models = BackendModels(http_client, config.backend.url)
    app.state.backend_models = backend_models

    # ── Step 5: Guard model provisioning (fire-and-forget) ───────────────────
    provisioning_task = start_provisioning(config, backend_models)
    app.state.provisioning_task = provisioning_task

    # ── Step 6: Mark as ready ────────────────────────────────────────────────
    app.state.ready = True
    logger.info(
        "Molt-Guard ready",
        backend=config.backend.url,
        validation_mode=config.policy.mode.value,
        sensitivity=config.policy.sensitivity.value,
        redaction_stages=app.state.redaction.stage_names,
    )

    # ── Server runs here ─────────────────────────────────────────────────────
    yield

    # ── Shutdown (reverse order) ─────────────────────────────────────────────
    logger.info("Molt-Guard shutting down...")

    # Refuse new requests
    app.state.ready = False

    if provisioning_task is not None and not provisioning_task.done():
        provisioning_task.cancel()
        try:
            await provisioning_task
        except asyncio.CancelledError:
            pass

    try:
        await http_client.aclose()
        logger.info("HTTP backend client closed")
    except Exception as exc:
        logger.warning("HTTP backend client close error (non-fatal)", error=str(exc))

    logger.info("Molt-Guard shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the Molt-Guard FastAPI application.

    Call this function directly in tests to get an isolated app instance:
        app = create_app()

    Returns:
        Configured FastAPI application with lifespan, routers and handlers.
    """
    # Swagger UI and ReDoc only with DEBUG=true (local development).
    application = FastAPI(
        title="Molt-Guard",
        description="Inline security gateway for a local LLM inference backend",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    # Initialize ready flag before lifespan so proxy routes answer 503
    # on any request that arrives before startup completes.
    application.state.ready = False

    # Clears the per-request logging context after every request
    application.add_middleware(RequestContextMiddleware)

    # Register routers
    # health_router: / and /health (ungated; registered first for priority)
    application.include_router(health_router)
    # proxy_router: schema-aware endpoints and /v1/models
    application.include_router(proxy_router, dependencies=[Depends(require_ready)])
    # fallback_router: catch-all /{path:path}; MUST be included last
    application.include_router(fallback_router, dependencies=[Depends(require_ready)])

    # Global exception handlers
    @application.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        logger.warning(
            "gateway_error",
            status_code=exc.status_code,
            code=exc.code,
            path=str(request.url.path),
        )
        return build_error_response(exc, request_id=get_request_id())

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
