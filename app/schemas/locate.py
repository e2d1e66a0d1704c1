import re
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, AliasChoices, Field, field_validator

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class LocateRequest(BaseModel):
    # "tagId" is what the web client has always sent
    device_id: str = Field(validation_alias=AliasChoices("deviceId", "tagId"))

    model_config = ConfigDict(extra="ignore")

    @field_validator("device_id", mode="before")
    @classmethod
    def _canonical_uuid(cls, v):
        if not isinstance(v, str) or not UUID_RE.match(v):
            raise ValueError("device id must be a canonical UUID")
        return v

    @property
    def device_uuid(self) -> UUID:
        return UUID(self.device_id)


class LocationOut(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    confidence: Optional[float] = None
    status_code: Optional[int] = None
    timestamp: str
