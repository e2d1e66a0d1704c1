import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Integer, Float, ForeignKey, Index, Uuid
from app.db.session import Base

class LocationRecord(Base):
    """One observation of a device. Append-only: the lookup pipeline never updates or deletes rows."""
    __tablename__ = "location_history"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    device_id = Column(Uuid(as_uuid=True), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    confidence = Column(Float, nullable=True)
    status_code = Column(Integer, nullable=True)
    # observation instant reported upstream (or lookup time); drives cache + rate limit
    timestamp = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (Index("ix_location_history_device_ts", "device_id", "timestamp"), )
