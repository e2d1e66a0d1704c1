# app/services/location_history.py
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.models.location import LocationRecord
from app.services.normalizer import NormalizedLocation, as_utc, format_timestamp

logger = logging.getLogger("locate")


def get_latest_location(db: Session, device_id: UUID) -> Optional[LocationRecord]:
    """Most recent observation; the one row both the rate limit and the cache look at."""
    return (
        db.query(LocationRecord)
        .filter(LocationRecord.device_id == device_id)
        .order_by(LocationRecord.timestamp.desc())
        .first()
    )


def list_locations(db: Session, device_id: UUID, limit: int = 50) -> List[LocationRecord]:
    return (
        db.query(LocationRecord)
        .filter(LocationRecord.device_id == device_id)
        .order_by(LocationRecord.timestamp.desc())
        .limit(limit)
        .all()
    )


def record_to_dict(record: LocationRecord) -> dict:
    return {
        "latitude": record.latitude,
        "longitude": record.longitude,
        "confidence": record.confidence,
        "status_code": record.status_code,
        "timestamp": format_timestamp(record.timestamp),
    }


def append_location(db: Session, device_id: UUID, location: NormalizedLocation) -> Optional[LocationRecord]:
    """
    Best-effort append. Locations without both coordinates are skipped; a failed
    write is logged and rolled back, never raised: the lookup itself already succeeded.
    """
    if not location.has_coordinates:
        logger.info("Location for device %s has no coordinates, not saved to history", device_id)
        return None

    record = LocationRecord(
        device_id=device_id,
        latitude=location.latitude,
        longitude=location.longitude,
        confidence=location.confidence,
        status_code=location.status_code,
        timestamp=as_utc(location.timestamp),
    )
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error saving to history for device %s", device_id)
        return None

    logger.info("Location saved to history")
    return record


def acquire_device_lock(db: Session, device_id: UUID) -> bool:
    """
    Transaction-scoped advisory lock on the device (released on commit/rollback).
    Only PostgreSQL has one; elsewhere this is a no-op and returns False.
    """
    dialect = db.get_bind().dialect.name
    if dialect != "postgresql":
        logger.warning("advisory_lock single-flight requested on %s, running without lock", dialect)
        return False
    db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": str(device_id)})
    return True
