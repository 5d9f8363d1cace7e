"""
FastAPI application entry point for the Echo backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from echo_backend.config import get_settings
from echo_backend.errors import EchoError, StorageUnavailable
from echo_backend.records import utcnow
from echo_backend.routes import router

logger = logging.getLogger(__name__)


async def echo_error_handler(request: Request, exc: EchoError) -> JSONResponse:
    if isinstance(exc, StorageUnavailable):
        logger.exception(f"Storage failure on {request.method} {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"][1:]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400, content={"error": "Validation failed", "details": details}
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="Echo Backend (FastAPI)", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(EchoError, echo_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health")
    def health():
        return {"status": "OK", "timestamp": utcnow().isoformat()}

    return app


app = create_app()
