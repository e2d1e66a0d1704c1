import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Enum, Uuid, Text
from app.db.session import Base
from app.models.enums import DeviceStatus

class Device(Base):
    __tablename__ = "devices"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, default="")
    # identifier expected by the K-Tag API
    accessory_id = Column(String(255), nullable=False)
    # Opaque key material; both must be non-blank before an upstream lookup
    hashed_adv_key = Column(Text, nullable=True)
    private_key = Column(Text, nullable=True)
    # identity from the external identity provider (JWT "sub"), no local users table
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    status = Column(Enum(DeviceStatus, name="device_status", native_enum=False), nullable=False, default=DeviceStatus.active)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    @property
    def has_keys(self) -> bool:
        return bool((self.hashed_adv_key or "").strip() and (self.private_key or "").strip())
