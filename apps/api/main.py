from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from capsule_api.config import DEFAULT_SESSION_SECRET, Settings
from capsule_api.dependencies import build_services, get_settings
from capsule_api.domain.exceptions import CapsuleError
from capsule_api.domain.ports import KVTransport
from capsule_api.identity import load_bootstrap_users
from capsule_api.interface.api.errors import register_error_handlers
from capsule_api.interface.api.routes import debug_router, router


def create_app(settings: Optional[Settings] = None, transport: Optional[KVTransport] = None) -> FastAPI:
    settings = settings or get_settings()
    services = build_services(settings, transport)
    logger = logging.getLogger("capsule.api")

    if settings.session_secret == DEFAULT_SESSION_SECRET:
        logger.warning("SESSION_SECRET is not set: session cookies are signed with the development secret")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            users = load_bootstrap_users(settings)
            created = await services.identity.ensure_bootstrap_users(users)
            logger.info("bootstrap_users", extra={"configured": len(users), "created": len(created)})
        except (CapsuleError, OSError, ValueError):
            logger.exception("bootstrap_users_failed")
        yield
        await services.store.aclose()

    app = FastAPI(title="Capsule API", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            dt_ms = (time.perf_counter() - start) * 1000.0
            logger.exception("request_error", extra={"rid": request_id, "path": request.url.path, "ms": dt_ms})
            return JSONResponse(
                status_code=500,
                content={"detail": "internal_error", "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )

        dt_ms = (time.perf_counter() - start) * 1000.0
        extra = {
            "rid": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "ms": dt_ms,
        }
        if settings.api_debug_log:
            extra["query"] = request.url.query
        logger.info("request", extra=extra)
        response.headers["X-Request-ID"] = request_id
        return response

    register_error_handlers(app)
    app.include_router(router)
    if settings.debug_routes:
        app.include_router(debug_router)

    return app


app = create_app()
