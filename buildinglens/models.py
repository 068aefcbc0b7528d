import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Float, Index, String, Text, UniqueConstraint

from buildinglens.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how SQLite stores DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class CachedBuilding(Base):
    __tablename__ = "cached_buildings"
    __table_args__ = (
        UniqueConstraint("external_id", "source", name="uq_cached_buildings_external_source"),
        Index("idx_cached_buildings_location", "latitude", "longitude"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    external_id = Column(String(255), nullable=True, index=True)
    source = Column(String(50), nullable=False, index=True)
    name = Column(String(500), nullable=True)
    address = Column(Text, nullable=False, default="")
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    # "metadata" is reserved on declarative classes.
    building_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True, index=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<CachedBuilding id={self.id} source={self.source} name={self.name!r}>"
