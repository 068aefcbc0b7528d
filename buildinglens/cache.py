import logging
import time
from threading import RLock
from typing import Any, List, Optional, Sequence, Tuple

from buildinglens.schemas import BuildingCandidate, Coordinate
from buildinglens.services.geo_math import normalize_angle

IDENTIFY_CACHE_PREFIX = "identify:"


class TTLCache:
    def __init__(self, ttl: int = 60):
        self.ttl = ttl
        self._store: dict[str, Tuple[float, Any]] = {}
        self._lock = RLock()
        self._logger = logging.getLogger(self.__class__.__name__)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._store.get(key)
            if not item:
                self._logger.debug("Cache miss for key '%s'", key)
                return None
            expires_at, value = item
            if expires_at < time.time():
                self._store.pop(key, None)
                self._logger.debug("Cache expired for key '%s'", key)
                return None
            self._logger.debug("Cache hit for key '%s'", key)
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.ttl if ttl is None else ttl
        with self._lock:
            self._store[key] = (time.time() + ttl, value)
            self._logger.debug("Cache set for key '%s' with ttl %s", key, ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)
            self._logger.debug("Cache delete for key '%s'", key)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._logger.debug("Cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


def identify_cache_key(coordinate: Coordinate, heading: Optional[float], radius: float) -> str:
    """Key identify results by ~1m rounded position, whole-degree heading and radius."""
    key = f"{IDENTIFY_CACHE_PREFIX}{coordinate.latitude:.5f},{coordinate.longitude:.5f}"
    if heading is not None:
        key += f":h{round(normalize_angle(heading)) % 360}"
    return f"{key}:{radius:g}"


class IdentifyResultCache:
    """Short-lived cache of complete, ranked identify results."""

    def __init__(self, cache: Optional[TTLCache] = None, ttl: int = 3600):
        self.ttl = ttl
        self._cache = cache if cache is not None else TTLCache(ttl=ttl)

    def get(
        self, coordinate: Coordinate, heading: Optional[float], radius: float
    ) -> Optional[List[BuildingCandidate]]:
        snapshots = self._cache.get(identify_cache_key(coordinate, heading, radius))
        if snapshots is None:
            return None
        return [BuildingCandidate.model_validate(snapshot) for snapshot in snapshots]

    def set(
        self,
        coordinate: Coordinate,
        heading: Optional[float],
        radius: float,
        candidates: Sequence[BuildingCandidate],
        ttl: Optional[int] = None,
    ) -> None:
        # Stored as plain dicts, rebuilt on read.
        snapshots = [candidate.model_dump() for candidate in candidates]
        self._cache.set(identify_cache_key(coordinate, heading, radius), snapshots, ttl or self.ttl)

    def clear(self) -> None:
        self._cache.clear()
