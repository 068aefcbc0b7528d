"""Durable cache of buildings seen in earlier identifications."""

import logging
import math
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import sessionmaker

from buildinglens.database import session_scope
from buildinglens.models import CachedBuilding, new_id, utcnow
from buildinglens.schemas import BuildingCandidate, CachedBuildingRecord, CandidateSource, Coordinate
from buildinglens.services.geo_math import EARTH_RADIUS_METERS, distance_meters

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}

_UPDATABLE_COLUMNS = ("name", "address", "latitude", "longitude", "metadata", "updated_at", "expires_at")


def _to_record(row: CachedBuilding) -> CachedBuildingRecord:
    return CachedBuildingRecord(
        id=row.id,
        external_id=row.external_id,
        source=row.source,
        name=row.name,
        address=row.address or "",
        coordinates=Coordinate(latitude=row.latitude, longitude=row.longitude),
        metadata=row.building_metadata or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
        expires_at=row.expires_at,
    )


def _bounding_box(coordinate: Coordinate, radius: float):
    lat_delta = math.degrees(radius / EARTH_RADIUS_METERS)
    min_lat = max(-90.0, coordinate.latitude - lat_delta)
    max_lat = min(90.0, coordinate.latitude + lat_delta)

    cos_lat = math.cos(math.radians(coordinate.latitude))
    if cos_lat < 1e-6:
        return min_lat, max_lat, None, None
    lon_delta = lat_delta / cos_lat
    min_lon = coordinate.longitude - lon_delta
    max_lon = coordinate.longitude + lon_delta
    # Boxes crossing the antimeridian fall back to the latitude band alone.
    if min_lon < -180.0 or max_lon > 180.0:
        return min_lat, max_lat, None, None
    return min_lat, max_lat, min_lon, max_lon


class BuildingCacheRepository:
    def __init__(self, session_factory: Optional[sessionmaker] = None, ttl_seconds: int = 604800):
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds

    def find_records_near(self, coordinate: Coordinate, radius: float) -> List[CachedBuildingRecord]:
        """Unexpired records within ``radius`` meters, nearest first."""
        min_lat, max_lat, min_lon, max_lon = _bounding_box(coordinate, radius)
        now = utcnow()

        query = select(CachedBuilding).where(
            CachedBuilding.latitude.between(min_lat, max_lat),
            or_(CachedBuilding.expires_at.is_(None), CachedBuilding.expires_at > now),
        )
        if min_lon is not None:
            query = query.where(CachedBuilding.longitude.between(min_lon, max_lon))

        with session_scope(self.session_factory) as session:
            rows = session.execute(query).scalars().all()
            records = [_to_record(row) for row in rows]

        nearby = []
        for record in records:
            distance = distance_meters(coordinate, record.coordinates)
            if distance <= radius:
                nearby.append((distance, record))
        nearby.sort(key=lambda item: item[0])

        logger.debug(
            "Found %d cached buildings near lat=%s lon=%s radius=%s",
            len(nearby),
            coordinate.latitude,
            coordinate.longitude,
            radius,
        )
        return [record for _, record in nearby]

    def upsert_record(self, record: CachedBuildingRecord) -> str:
        """Insert or update by (external_id, source) in a single statement."""
        now = utcnow()
        values: Dict[str, Any] = {
            "id": record.id or new_id(),
            "external_id": record.external_id,
            "source": record.source,
            "name": record.name,
            "address": record.address,
            "latitude": record.coordinates.latitude,
            "longitude": record.coordinates.longitude,
            "metadata": record.metadata or None,
            "created_at": now,
            "updated_at": now,
            "expires_at": record.expires_at,
        }

        with session_scope(self.session_factory) as session:
            dialect = session.get_bind().dialect.name
            insert = _INSERT_BY_DIALECT.get(dialect)
            if insert is None:
                raise RuntimeError(f"Building cache upsert is not supported on {dialect!r}")

            stmt = insert(CachedBuilding.__table__).values(**values)
            if record.external_id is None:
                session.execute(stmt)
                building_id = values["id"]
            else:
                stmt = stmt.on_conflict_do_update(
                    index_elements=["external_id", "source"],
                    set_={column: stmt.excluded[column] for column in _UPDATABLE_COLUMNS},
                )
                session.execute(stmt)
                building_id = session.execute(
                    select(CachedBuilding.id).where(
                        CachedBuilding.external_id == record.external_id,
                        CachedBuilding.source == record.source,
                    )
                ).scalar_one()

        logger.debug("Upserted cached building id=%s source=%s name=%r", building_id, record.source, record.name)
        return building_id

    def save_candidate(self, candidate: BuildingCandidate, ttl_seconds: Optional[int] = None) -> str:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        metadata = dict(candidate.metadata)

        source = candidate.source.value
        if candidate.source == CandidateSource.CACHE:
            source = str(metadata.get("originalSource") or CandidateSource.CACHE.value)

        # Computed values live under "scoring"; provider keys stay untouched.
        metadata["scoring"] = {
            "distance": candidate.distance,
            "bearing": candidate.bearing,
            "bearingDiff": candidate.bearing_diff,
            "confidence": candidate.confidence,
        }

        record = CachedBuildingRecord(
            external_id=candidate.external_id,
            source=source,
            name=candidate.name,
            address=candidate.address,
            coordinates=candidate.coordinates,
            metadata=metadata,
            expires_at=utcnow() + timedelta(seconds=ttl),
        )
        return self.upsert_record(record)

    def cached_candidates(self, coordinate: Coordinate, radius: float) -> List[BuildingCandidate]:
        return [
            BuildingCandidate(
                id=record.id,
                external_id=record.external_id,
                name=record.name,
                address=record.address,
                coordinates=record.coordinates,
                source=CandidateSource.CACHE,
                metadata={**record.metadata, "originalSource": record.source},
            )
            for record in self.find_records_near(coordinate, radius)
        ]

    def cleanup_expired(self) -> int:
        now = utcnow()
        with session_scope(self.session_factory) as session:
            deleted = (
                session.query(CachedBuilding)
                .filter(CachedBuilding.expires_at.is_not(None), CachedBuilding.expires_at < now)
                .delete(synchronize_session=False)
            )
        logger.info("Cleaned up %d expired cached buildings", deleted)
        return deleted

    def stats(self) -> Dict[str, Any]:
        now = utcnow()
        with session_scope(self.session_factory) as session:
            total = session.query(func.count(CachedBuilding.id)).scalar() or 0
            by_source = dict(
                session.query(CachedBuilding.source, func.count(CachedBuilding.id))
                .group_by(CachedBuilding.source)
                .all()
            )
            expired = (
                session.query(func.count(CachedBuilding.id))
                .filter(CachedBuilding.expires_at.is_not(None), CachedBuilding.expires_at < now)
                .scalar()
                or 0
            )
        return {"totalBuildings": total, "bySource": by_source, "expiredCount": expired}
