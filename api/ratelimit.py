from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from core.config import get_settings


def _limiter_enabled() -> bool:
    settings = get_settings()
    if str(settings.app_env).lower() == "test":
        return False
    return bool(settings.rate_limit_enabled)


def rate_limit_key(request: Request) -> str:
    """Bucket by bearer token when present, else by client address."""
    auth = request.headers.get("authorization") or ""
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer" and token:
        return f"token:{token[-32:]}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=rate_limit_key,
    storage_uri=get_settings().rate_limit_storage_uri,
    enabled=_limiter_enabled(),
    headers_enabled=True,
)


def rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
    headers: dict[str, str] = {}
    retry_after = getattr(exc, "retry_after", None) if isinstance(exc, RateLimitExceeded) else None
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    limit = getattr(exc, "detail", None)
    return JSONResponse(
        status_code=429,
        content={"detail": {"code": "RATE_LIMITED", "message": "Rate limit exceeded", "limit": str(limit or "")}},
        headers=headers,
    )
