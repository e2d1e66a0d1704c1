from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from app.core.config_env import Settings
from app.core.deps import get_settings, resolve_identity
from app.core.errors import NotFound
from app.db.session import get_db
from app.schemas.locate import LocationOut
from app.services.locate_service import get_owned_device
from app.services.location_history import get_latest_location, list_locations, record_to_dict

router = APIRouter(prefix="/devices", tags=["devices"])


@router.get("/{device_id}/locations", response_model=List[LocationOut])
def device_locations(
    device_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    identity = resolve_identity(authorization, settings)
    device = get_owned_device(db, device_id, identity)
    return [record_to_dict(r) for r in list_locations(db, device.id, limit)]


@router.get("/{device_id}/locations/latest", response_model=LocationOut)
def device_latest_location(
    device_id: UUID,
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    identity = resolve_identity(authorization, settings)
    device = get_owned_device(db, device_id, identity)
    latest = get_latest_location(db, device.id)
    if not latest:
        raise NotFound("No location recorded for this device")
    return record_to_dict(latest)
