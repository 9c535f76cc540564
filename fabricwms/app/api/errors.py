"""
Handlers d'erreurs: toute réponse d'erreur a la même forme

    {"detail": str, "error": CODE, "details": {...}, "retryable": bool}

validation -> 400, introuvable -> 404, conflit métier -> 409 (ou 400 compat),
infra transitoire -> 503.
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fabricwms.app.core.logging import get_logger
from fabricwms.services.exceptions import WMSError

logger = get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WMSError)
    async def wms_error_handler(request: Request, exc: WMSError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "request_rejected",
            path=request.url.path,
            error=exc.code,
            status_code=exc.status_code,
            message=exc.message,
        )
        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", ""),
                "type": err.get("type", ""),
            }
            for err in exc.errors()
        ]
        message = errors[0]["message"] if errors else "Invalid request"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": message,
                "error": "VALIDATION_ERROR",
                "details": {"errors": errors},
                "retryable": False,
            },
        )
