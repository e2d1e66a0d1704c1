# app/core/deps.py
import os
import re
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends
from jose import jwt, JWTError

from app.core.config_env import Settings, settings as _settings
from app.core.errors import Unauthenticated
from app.services.ktag_client import KTagClient

BEARER_RE = re.compile(r"^Bearer\s+(?P<token>.+)$", re.IGNORECASE)

DEBUG_AUTH = os.getenv("DEBUG_AUTH", "0").lower() in ("1", "true", "yes")
logger = logging.getLogger("auth")


def _log(msg: str, **kw):
    if DEBUG_AUTH:
        safe_kw = {k: (v if k != "token" else f"{str(v)[:16]}...") for k, v in kw.items()}
        logger.info("[auth] " + msg + " " + " ".join(f"{k}={v}" for k, v in safe_kw.items()))


def get_settings() -> Settings:
    return _settings


def get_clock():
    return utcnow


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_ktag_client(settings: Settings = Depends(get_settings)) -> KTagClient:
    return KTagClient(settings)


def extract_bearer(authorization: Optional[str]) -> str:
    if not authorization:
        _log("missing authorization header")
        raise Unauthenticated("Missing authorization header")
    m = BEARER_RE.match(authorization.strip())
    if not m:
        _log("non-bearer authorization header")
        raise Unauthenticated()
    return m.group("token").strip()


def resolve_identity(authorization: Optional[str], settings: Settings) -> UUID:
    """
    Bearer credential -> identity (UUID from the "sub" claim).
    The token is issued by the external identity provider; here it is only verified.
    """
    token = extract_bearer(authorization)
    _log("incoming token", token=token, len=len(token))

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            options={"verify_aud": False},  # не проверяем aud
        )
    except JWTError as e:
        _log("JWTError on decode", err=str(e))
        raise Unauthenticated()

    sub_raw = payload.get("sub")
    if not sub_raw:
        _log("no subject in token")
        raise Unauthenticated()
    try:
        identity = UUID(str(sub_raw))
    except ValueError:
        _log("subject is not a UUID", sub=sub_raw)
        raise Unauthenticated()

    _log("identity resolved", sub=identity)
    return identity
