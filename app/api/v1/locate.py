# app/api/v1/locate.py
from typing import Any, Callable, Optional
from datetime import datetime

from fastapi import APIRouter, Body, Depends, Header, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.config_env import Settings
from app.core.deps import get_clock, get_ktag_client, get_settings
from app.db.session import get_db
from app.services.ktag_client import KTagClient
from app.services.locate_service import LocateService

router = APIRouter(prefix="/locate", tags=["locate"])


@router.options("")
def locate_preflight(settings: Settings = Depends(get_settings)):
    return Response(status_code=200, headers=settings.cors_headers)


@router.post("")
def locate_device(
    payload: Any = Body(None),
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    client: KTagClient = Depends(get_ktag_client),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Looks up the current position of a K-Tag owned by the caller.

    Body: {"deviceId": "<uuid>"}; header: Authorization: Bearer <token>.
    200 {"success": true, "location": {...}, "cached": bool}, or
    200 {"success": false, ...} when the network has no report yet.
    """
    service = LocateService(db, settings, client, clock=clock)
    result = service.locate(payload, authorization)
    return JSONResponse(content=result, headers=settings.cors_headers)
