from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from api.observability import monotonic_ms, request_log_fields
from api.ratelimit import limiter, rate_limit_exceeded_handler
from api.routes import router
from core.config import get_settings
from core.errors import EngineError, InvalidPayload, NotFound, StateConflict
from core.logging_config import new_request_id, reset_request_id, set_request_id, setup_logging

logger = logging.getLogger(__name__)

ERROR_STATUS: tuple[tuple[type[EngineError], int], ...] = (
    (InvalidPayload, 422),
    (NotFound, 404),
    (StateConflict, 409),
)


def engine_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = 400
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break
    detail = exc.as_detail() if isinstance(exc, EngineError) else {"code": "ENGINE_ERROR", "message": str(exc)}
    logger.info(
        "engine_error",
        extra={"ctx_path": request.url.path, "ctx_status_code": status_code, "ctx_code": detail["code"]},
    )
    return JSONResponse(status_code=status_code, content={"detail": detail})


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="Training Load Engine API", version="1.0.0")
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(EngineError, engine_error_handler)
    app.include_router(router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_and_logging(request: Request, call_next: Callable) -> Response:
        header_name = settings.request_id_header_name or "X-Request-ID"
        request_id = (request.headers.get(header_name) or "").strip() or new_request_id()
        token = set_request_id(request_id)
        started_ms = monotonic_ms()
        client_ip = getattr(request.client, "host", None)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http_request_error",
                extra=request_log_fields(
                    method=request.method,
                    path=request.url.path,
                    status_code=500,
                    duration_ms=monotonic_ms() - started_ms,
                    client_ip=client_ip,
                ),
            )
            raise
        else:
            response.headers[header_name] = request_id
            logger.info(
                "http_request",
                extra=request_log_fields(
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=monotonic_ms() - started_ms,
                    client_ip=client_ip,
                ),
            )
            return response
        finally:
            reset_request_id(token)

    return app


app = create_app()
