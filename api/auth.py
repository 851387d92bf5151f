from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthPrincipal:
    user_id: int
    role: str
    athlete_id: Optional[int]
    exp: int


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * ((4 - (len(data) % 4)) % 4)
    return base64.urlsafe_b64decode((data + padding).encode("ascii"))


def _sign(signing_input: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def issue_access_token(*, user_id: int, role: str, athlete_id: Optional[int], expires_in_seconds: int = 3600) -> str:
    """Sign a bearer token. Issuance normally lives in the identity service; tests and scripts use this."""
    settings = get_settings()
    header = {"alg": "HS256", "typ": "JWT"}
    payload = {
        "sub": int(user_id),
        "role": str(role),
        "athlete_id": athlete_id,
        "exp": int(time.time()) + int(expires_in_seconds),
    }
    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}"
    return f"{signing_input}.{_sign(signing_input, settings.jwt_secret_key)}"


def decode_access_token(token: str) -> AuthPrincipal:
    settings = get_settings()
    try:
        header_b64, payload_b64, signature = token.split(".", 2)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail={"code": "INVALID_TOKEN"}) from exc

    signing_input = f"{header_b64}.{payload_b64}"
    if not hmac.compare_digest(signature, _sign(signing_input, settings.jwt_secret_key)):
        raise HTTPException(status_code=401, detail={"code": "INVALID_TOKEN"})

    try:
        payload = json.loads(_b64url_decode(payload_b64))
    except (ValueError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=401, detail={"code": "INVALID_TOKEN"}) from exc

    exp = int(payload.get("exp") or 0)
    if exp <= int(time.time()):
        raise HTTPException(status_code=401, detail={"code": "TOKEN_EXPIRED"})

    try:
        return AuthPrincipal(
            user_id=int(payload["sub"]),
            role=str(payload.get("role") or "athlete"),
            athlete_id=(int(payload["athlete_id"]) if payload.get("athlete_id") is not None else None),
            exp=exp,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail={"code": "INVALID_TOKEN"}) from exc


def get_current_principal(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> AuthPrincipal:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail={"code": "AUTH_REQUIRED"})
    return decode_access_token(credentials.credentials)


def current_athlete_id(principal: AuthPrincipal = Depends(get_current_principal)) -> int:
    """Every engine operation acts on the caller's own athlete record."""
    if principal.athlete_id is None:
        raise HTTPException(status_code=403, detail={"code": "FORBIDDEN_ATHLETE_SCOPE", "principal_athlete_id": None})
    return int(principal.athlete_id)
