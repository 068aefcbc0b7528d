"""Building identification pipeline.

``IdentificationService.identify`` ranks the buildings around a user:

1. return a cached result for the same rounded position, heading and radius;
2. gather candidates from the building cache and the places provider
   concurrently, falling back to reverse geocoding when fewer than
   ``MIN_CANDIDATES_BEFORE_FALLBACK`` were found;
3. compute distance, bearing and heading offset for every candidate;
4. score and sort them;
5. remember the strongest provider candidates in the building cache and the
   whole ranking in the result cache.

Only a failure of the places lookup aborts the pipeline. Every other source
and every cache write degrades to "no data" with a log line.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from buildinglens.cache import IdentifyResultCache, TTLCache
from buildinglens.config import Settings, get_settings
from buildinglens.schemas import (
    BuildingCandidate,
    CandidateSource,
    Coordinate,
    GeocodeResult,
    IdentifyResult,
    PlaceResult,
)
from buildinglens.services.building_cache import BuildingCacheRepository
from buildinglens.services.geo_math import bearing_and_distance
from buildinglens.services.geocoding import GoogleGeocodingProvider, NominatimProvider, ReverseGeocoder
from buildinglens.services.places import PlacesClient
from buildinglens.services.scoring import ConfidenceScorer, sort_by_confidence

logger = logging.getLogger(__name__)

MIN_CANDIDATES_BEFORE_FALLBACK = 3
PERSIST_MIN_CONFIDENCE = 30.0
PERSIST_MAX_CANDIDATES = 5


class IdentificationError(RuntimeError):
    """Raised when the primary places lookup fails."""

    def __init__(self, message: str, *, latitude: float, longitude: float, heading: Optional[float], search_radius: float):
        super().__init__(message)
        self.latitude = latitude
        self.longitude = longitude
        self.heading = heading
        self.search_radius = search_radius

    def context(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "heading": self.heading,
            "searchRadius": self.search_radius,
        }


def place_to_candidate(place: PlaceResult) -> BuildingCandidate:
    metadata: Dict[str, Any] = {}
    if place.rating is not None:
        metadata["rating"] = place.rating
    if place.user_ratings_total is not None:
        metadata["userRatingsTotal"] = place.user_ratings_total
    if place.types:
        metadata["types"] = list(place.types)
    metadata.update(place.metadata)

    return BuildingCandidate(
        external_id=place.place_id,
        name=place.name or None,
        address=place.address,
        coordinates=place.coordinates,
        source=CandidateSource.GOOGLE_PLACES,
        metadata=metadata,
    )


def geocode_to_candidate(result: GeocodeResult) -> BuildingCandidate:
    return BuildingCandidate(
        external_id=result.place_id,
        name=result.name,
        address=result.address,
        coordinates=result.coordinates,
        source=result.source,
        metadata=dict(result.metadata),
    )


class IdentificationService:
    def __init__(
        self,
        places: PlacesClient,
        geocoder: ReverseGeocoder,
        building_cache: BuildingCacheRepository,
        result_cache: IdentifyResultCache,
        scorer: Optional[ConfidenceScorer] = None,
        default_radius: float = 100.0,
        result_ttl: int = 3600,
    ):
        self.places = places
        self.geocoder = geocoder
        self.building_cache = building_cache
        self.result_cache = result_cache
        self.scorer = scorer or ConfidenceScorer()
        self.default_radius = default_radius
        self.result_ttl = result_ttl

    async def identify(
        self,
        latitude: float,
        longitude: float,
        heading: Optional[float] = None,
        search_radius: Optional[float] = None,
    ) -> IdentifyResult:
        started = time.monotonic()
        radius = search_radius or self.default_radius
        center = Coordinate(latitude=latitude, longitude=longitude)
        logger.info(
            "Starting building identification lat=%s lon=%s heading=%s radius=%s",
            latitude,
            longitude,
            heading,
            radius,
        )

        cached = self._read_result_cache(center, heading, radius)
        if cached is not None:
            logger.info(
                "Returning %d cached candidates in %.1fms",
                len(cached),
                (time.monotonic() - started) * 1000,
            )
            return self._result(cached, center, heading, radius)

        try:
            candidates = await self._gather_candidates(center, radius)
        except Exception as exc:
            logger.exception(
                "Error identifying building lat=%s lon=%s heading=%s radius=%s",
                latitude,
                longitude,
                heading,
                radius,
            )
            raise IdentificationError(
                f"Places lookup failed for ({latitude}, {longitude}) within {radius:g}m: {exc}",
                latitude=latitude,
                longitude=longitude,
                heading=heading,
                search_radius=radius,
            ) from exc

        self._enrich_geometry(candidates, center, heading)
        self._score(candidates)
        candidates = sort_by_confidence(candidates)

        await self._persist(candidates, center, heading, radius)

        logger.info(
            "Building identification complete: %d candidates, top confidence=%s, %.1fms",
            len(candidates),
            candidates[0].confidence if candidates else None,
            (time.monotonic() - started) * 1000,
        )
        return self._result(candidates, center, heading, radius)

    async def identify_top(
        self,
        latitude: float,
        longitude: float,
        heading: Optional[float] = None,
        search_radius: Optional[float] = None,
    ) -> Optional[BuildingCandidate]:
        result = await self.identify(latitude, longitude, heading, search_radius)
        return result.candidates[0] if result.candidates else None

    def _result(
        self, candidates: List[BuildingCandidate], center: Coordinate, heading: Optional[float], radius: float
    ) -> IdentifyResult:
        return IdentifyResult(
            candidates=candidates,
            search_radius=radius,
            search_center=center,
            heading=heading,
            timestamp=datetime.now(timezone.utc),
        )

    def _read_result_cache(
        self, center: Coordinate, heading: Optional[float], radius: float
    ) -> Optional[List[BuildingCandidate]]:
        try:
            return self.result_cache.get(center, heading, radius)
        except Exception:  # noqa: BLE001
            logger.exception("Error reading identify result cache lat=%s lon=%s", center.latitude, center.longitude)
            return None

    async def _cached_buildings(self, center: Coordinate, radius: float) -> List[BuildingCandidate]:
        try:
            candidates = await asyncio.to_thread(self.building_cache.cached_candidates, center, radius)
        except Exception:  # noqa: BLE001
            logger.exception("Error reading building cache lat=%s lon=%s radius=%s", center.latitude, center.longitude, radius)
            return []
        logger.debug("Found %d cached buildings", len(candidates))
        return candidates

    async def _geocode_fallback(self, center: Coordinate) -> Optional[BuildingCandidate]:
        try:
            result = await self.geocoder.reverse_geocode(center)
        except Exception:  # noqa: BLE001
            logger.exception("Geocoding fallback failed lat=%s lon=%s", center.latitude, center.longitude)
            return None
        return geocode_to_candidate(result) if result is not None else None

    async def _gather_candidates(self, center: Coordinate, radius: float) -> List[BuildingCandidate]:
        cached, places = await asyncio.gather(
            self._cached_buildings(center, radius),
            self.places.find_nearby(center, radius),
        )
        logger.debug("Found %d nearby places", len(places))

        candidates = list(cached)
        candidates.extend(place_to_candidate(place) for place in places)

        if len(candidates) < MIN_CANDIDATES_BEFORE_FALLBACK:
            logger.info("Only %d candidates found, trying geocoding fallback", len(candidates))
            fallback = await self._geocode_fallback(center)
            if fallback is not None:
                candidates.append(fallback)
        return candidates

    @staticmethod
    def _enrich_geometry(candidates: List[BuildingCandidate], center: Coordinate, heading: Optional[float]) -> None:
        for candidate in candidates:
            calculation = bearing_and_distance(center, candidate.coordinates, heading)
            candidate.distance = calculation.distance
            candidate.bearing = calculation.bearing
            candidate.bearing_diff = calculation.bearing_diff

    def _score(self, candidates: List[BuildingCandidate]) -> None:
        for candidate in candidates:
            candidate.confidence = self.scorer.score(
                distance=candidate.distance,
                bearing_diff=candidate.bearing_diff,
                source=candidate.source,
                has_name=bool(candidate.name),
                has_rating=candidate.metadata.get("rating") is not None,
            )

    async def _persist(
        self, candidates: List[BuildingCandidate], center: Coordinate, heading: Optional[float], radius: float
    ) -> None:
        top = [
            candidate
            for candidate in candidates
            if candidate.source != CandidateSource.CACHE and candidate.confidence > PERSIST_MIN_CONFIDENCE
        ][:PERSIST_MAX_CANDIDATES]

        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self.building_cache.save_candidate, candidate) for candidate in top),
            return_exceptions=True,
        )
        for candidate, outcome in zip(top, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Failed to save building to cache external_id=%s source=%s: %s",
                    candidate.external_id,
                    candidate.source.value,
                    outcome,
                )

        try:
            self.result_cache.set(center, heading, radius, candidates, self.result_ttl)
        except Exception:  # noqa: BLE001
            logger.exception("Error caching identify results lat=%s lon=%s", center.latitude, center.longitude)


def build_identification_service(settings: Settings) -> IdentificationService:
    places = PlacesClient(
        api_key=settings.google_maps_api_key,
        cache=TTLCache(ttl=settings.ttl_places),
        cache_ttl=settings.ttl_places,
        timeout=settings.http_timeout_seconds,
    )
    geocoder = ReverseGeocoder(
        providers=[
            GoogleGeocodingProvider(api_key=settings.google_maps_api_key, timeout=settings.http_timeout_seconds),
            NominatimProvider(
                base_url=settings.nominatim_base_url,
                email=settings.nominatim_email,
                timeout=settings.http_timeout_seconds,
            ),
        ],
        cache=TTLCache(ttl=settings.ttl_geocoding),
        cache_ttl=settings.ttl_geocoding,
    )
    return IdentificationService(
        places=places,
        geocoder=geocoder,
        building_cache=BuildingCacheRepository(ttl_seconds=settings.ttl_places),
        result_cache=IdentifyResultCache(ttl=settings.ttl_identify),
        default_radius=settings.search_radius_meters,
        result_ttl=settings.ttl_identify,
    )


@lru_cache(maxsize=1)
def get_identification_service() -> IdentificationService:
    return build_identification_service(get_settings())
