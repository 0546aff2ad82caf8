"""Exception handlers mapping domain errors to responses.

JSON callers (``Accept: application/json``) get ``{ok, error, detail}``
with the error's status. Page navigation gets a redirect instead: to
``/login`` when a session is missing, to ``/`` otherwise. Store failures
are always answered, never propagated, so one request cannot take the
process down.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from capsule_api.dependencies import wants_json
from capsule_api.domain.exceptions import AuthError, CapsuleError, StoreError

logger = logging.getLogger("capsule.api")


def _body(code: str, detail: str) -> dict:
    return {"ok": False, "error": code, "detail": detail}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CapsuleError)
    async def capsule_error_handler(request: Request, exc: CapsuleError):
        rid = getattr(request.state, "request_id", "")
        if isinstance(exc, StoreError):
            logger.error("store_failure", extra={"rid": rid, "path": request.url.path, "code": exc.code})
        else:
            logger.info("request_rejected", extra={"rid": rid, "path": request.url.path, "code": exc.code})

        if wants_json(request) or isinstance(exc, StoreError):
            return JSONResponse(status_code=exc.status_code, content=_body(exc.code, exc.message))
        if isinstance(exc, AuthError):
            return RedirectResponse("/login", status_code=303)
        return RedirectResponse("/", status_code=303)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("request_invalid", extra={"path": request.url.path, "errors": exc.errors()})
        return JSONResponse(status_code=400, content=_body("validation_error", "Invalid request data"))
