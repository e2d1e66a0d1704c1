# app/services/locate_service.py
"""
Locate pipeline:

    validate -> authenticate -> authorize -> rate limit -> cache -> upstream -> normalize -> persist

Each stage either passes or raises a LocateError; rendering is left to app/api/errors.py.
The latest location_history row drives two windows:

    age <  RATE_LIMIT_SECONDS                    -> RateLimited (429, retryAfter)
    RATE_LIMIT_SECONDS <= age < CACHE_SECONDS    -> stored row, cached=True
    age >= CACHE_SECONDS (or no row)             -> upstream call
"""
import math
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config_env import Settings
from app.core.deps import resolve_identity, utcnow
from app.core.errors import InvalidArgument, KeysMissing, NotFound, PermissionDenied, RateLimited
from app.models.device import Device
from app.models.location import LocationRecord
from app.schemas.locate import LocateRequest
from app.services.ktag_client import KTagClient
from app.services.location_history import (
    acquire_device_lock,
    append_location,
    get_latest_location,
    record_to_dict,
)
from app.services.normalizer import as_utc, normalize_ktag_response

logger = logging.getLogger("locate")


def parse_locate_request(payload: Any) -> UUID:
    if not isinstance(payload, dict):
        raise InvalidArgument()
    try:
        req = LocateRequest.model_validate(payload)
    except ValidationError:
        raise InvalidArgument()
    return req.device_uuid


def get_owned_device(db: Session, device_id: UUID, identity: UUID) -> Device:
    device = db.query(Device).filter(Device.id == device_id).first()
    if not device:
        logger.warning("Device not found: %s", device_id)
        raise NotFound()
    if device.owner_id != identity:
        logger.warning("Unauthorized access attempt for device: %s", device_id)
        raise PermissionDenied()
    return device


class LocateService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        client: KTagClient,
        clock: Callable[[], datetime] = utcnow,
        identity_resolver: Callable[[Optional[str], Settings], UUID] = resolve_identity,
    ):
        self.db = db
        self.settings = settings
        self.client = client
        self.clock = clock
        self.identity_resolver = identity_resolver

    def _age_seconds(self, record: LocationRecord, now: datetime) -> float:
        # a timestamp in the future counts as "just now"
        return max(0.0, (now - as_utc(record.timestamp)).total_seconds())

    def check_rate_limit(self, latest: Optional[LocationRecord], now: datetime) -> None:
        if latest is None:
            return
        age = self._age_seconds(latest, now)
        window = self.settings.RATE_LIMIT_SECONDS
        if age < window:
            wait = math.ceil(window - age)
            logger.info("Rate limited device %s, retry after %ss", latest.device_id, wait)
            raise RateLimited(wait)

    def cached_response(self, latest: Optional[LocationRecord], now: datetime) -> Optional[Dict[str, Any]]:
        if latest is None:
            return None
        age = self._age_seconds(latest, now)
        if age < self.settings.CACHE_SECONDS:
            logger.info("Returning cached location (age: %d seconds)", int(age))
            return {"success": True, "location": record_to_dict(latest), "cached": True}
        return None

    def locate(self, payload: Any, authorization: Optional[str]) -> Dict[str, Any]:
        device_id = parse_locate_request(payload)
        identity = self.identity_resolver(authorization, self.settings)
        logger.info("Query K-Tag API for device: %s", device_id)

        device = get_owned_device(self.db, device_id, identity)
        if self.settings.verbose_logs:
            logger.info("Device found: %s", device.name)

        if self.settings.LOOKUP_SINGLE_FLIGHT == "advisory_lock":
            acquire_device_lock(self.db, device.id)

        now = self.clock()
        latest = get_latest_location(self.db, device.id)
        self.check_rate_limit(latest, now)
        cached = self.cached_response(latest, now)
        if cached is not None:
            return cached

        if not device.has_keys:
            raise KeysMissing()

        raw = self.client.query(device.accessory_id, device.hashed_adv_key, device.private_key)
        if self.settings.verbose_logs:
            logger.info("K-Tag API response received")

        location = normalize_ktag_response(raw, self.clock())
        append_location(self.db, device.id, location)
        return {"success": True, "location": location.as_dict(), "cached": False}
