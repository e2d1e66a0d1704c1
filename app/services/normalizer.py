# app/services/normalizer.py
"""
K-Tag payload -> canonical location.

The upstream contract is loose, so every field is optional here:

    {"results": [{"lat": .., "lon": .., "conf": .., "status": .., "timestamp": ..}, ...]}

  - only results[0] is used (upstream sends newest first, no re-sorting)
  - lat/lon/conf  -> float or None
  - status        -> int or None
  - timestamp     -> ISO-8601 string or epoch (seconds / milliseconds); absent or
                     unreadable -> the time of the lookup
Empty or malformed payloads raise NoObservation.
"""
from __future__ import annotations
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.core.errors import NoObservation

# epoch values above this are milliseconds
_EPOCH_MS_THRESHOLD = 100_000_000_000


@dataclass(frozen=True)
class NormalizedLocation:
    latitude: Optional[float]
    longitude: Optional[float]
    confidence: Optional[float]
    status_code: Optional[int]
    timestamp: datetime

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "confidence": self.confidence,
            "status_code": self.status_code,
            "timestamp": format_timestamp(self.timestamp),
        }


def as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    return as_utc(dt).isoformat().replace("+00:00", "Z")


def _as_float(val: Any) -> Optional[float]:
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, int):
        return val
    try:
        f = float(val)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _as_int(val: Any) -> Optional[int]:
    if val is None or isinstance(val, bool):
        return None
    try:
        return int(val)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_timestamp(val: Any) -> Optional[datetime]:
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        seconds = val / 1000.0 if abs(val) >= _EPOCH_MS_THRESHOLD else float(val)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(val, str) and val.strip():
        raw = val.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(raw))
        except ValueError:
            return None
    return None


def normalize_ktag_response(payload: Any, now: datetime) -> NormalizedLocation:
    if not isinstance(payload, dict):
        raise NoObservation()
    results = payload.get("results") or []
    if not isinstance(results, list) or not results:
        raise NoObservation()

    latest = results[0]
    if not isinstance(latest, dict):
        raise NoObservation()

    return NormalizedLocation(
        latitude=_as_float(latest.get("lat")),
        longitude=_as_float(latest.get("lon")),
        confidence=_as_float(latest.get("conf")),
        status_code=_as_int(latest.get("status")),
        timestamp=parse_timestamp(latest.get("timestamp")) or as_utc(now),
    )
