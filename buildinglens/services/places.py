"""Client for the Google Places nearby search."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from buildinglens.cache import TTLCache
from buildinglens.schemas import Coordinate, PlaceResult

logger = logging.getLogger(__name__)

PLACES_BASE_URL = "https://maps.googleapis.com/maps/api/place"
CACHE_PREFIX = "places:"

BUILDING_TYPES = frozenset({"establishment", "point_of_interest", "premise", "street_address"})


class PlacesProviderError(RuntimeError):
    """Raised when the Places API returns a non-successful status."""


def places_cache_key(coordinate: Coordinate, radius: float) -> str:
    return f"{CACHE_PREFIX}{coordinate.latitude:.5f},{coordinate.longitude:.5f}:{radius:g}"


def _check_status(payload: Dict[str, Any]) -> str:
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        raise PlacesProviderError(payload.get("error_message") or str(status))
    return status


def _place_metadata(place: Dict[str, Any]) -> Dict[str, Any]:
    metadata = {
        "businessStatus": place.get("business_status"),
        "icon": place.get("icon"),
        "photos": place.get("photos"),
        "plusCode": place.get("plus_code"),
        "priceLevel": place.get("price_level"),
    }
    return {key: value for key, value in metadata.items() if value is not None}


def _convert_place(place: Dict[str, Any], place_id: Optional[str] = None) -> Optional[PlaceResult]:
    location = (place.get("geometry") or {}).get("location") or {}
    lat = location.get("lat")
    lng = location.get("lng")
    place_id = place_id or place.get("place_id")
    if lat is None or lng is None or not place_id:
        return None

    return PlaceResult(
        place_id=place_id,
        name=place.get("name") or "",
        address=place.get("vicinity") or place.get("formatted_address") or "",
        coordinates=Coordinate(latitude=float(lat), longitude=float(lng)),
        rating=place.get("rating"),
        user_ratings_total=place.get("user_ratings_total"),
        types=list(place.get("types") or []),
        vicinity=place.get("vicinity"),
        metadata=_place_metadata(place),
    )


def _is_building(place: Dict[str, Any]) -> bool:
    return bool(BUILDING_TYPES.intersection(place.get("types") or []))


class PlacesClient:
    """Finds building-like points of interest around a coordinate.

    Provider failures never escape :meth:`find_nearby`; they are logged and
    reported as an empty result so the caller can carry on with other sources.
    """

    def __init__(
        self,
        api_key: str,
        cache: Optional[TTLCache] = None,
        cache_ttl: int = 604800,
        timeout: float = 5.0,
        base_url: str = PLACES_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._cache = cache if cache is not None else TTLCache(ttl=cache_ttl)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/{path}", params=params)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Places API returned a non-object payload")
        return payload

    async def find_nearby(self, coordinate: Coordinate, radius: float) -> List[PlaceResult]:
        cache_key = places_cache_key(coordinate, radius)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Places cache hit for lat=%s lon=%s radius=%s", coordinate.latitude, coordinate.longitude, radius)
            return [PlaceResult.model_validate(item) for item in cached]

        params = {
            "location": f"{coordinate.latitude},{coordinate.longitude}",
            "radius": f"{radius:g}",
            "key": self.api_key,
        }
        logger.debug("Searching nearby places for lat=%s lon=%s radius=%s", coordinate.latitude, coordinate.longitude, radius)

        try:
            payload = await self._get_json("nearbysearch/json", params)
            status = _check_status(payload)
        except (httpx.HTTPError, ValueError, PlacesProviderError) as exc:
            logger.warning(
                "Places nearby search failed for lat=%s lon=%s radius=%s: %s",
                coordinate.latitude,
                coordinate.longitude,
                radius,
                exc,
            )
            return []

        if status == "ZERO_RESULTS":
            self._cache.set(cache_key, [], self.cache_ttl)
            return []

        raw_places = payload.get("results") or []
        if not isinstance(raw_places, list):
            raw_places = []
        results: List[PlaceResult] = []
        for place in raw_places:
            if not isinstance(place, dict):
                continue
            try:
                if not _is_building(place):
                    continue
                converted = _convert_place(place)
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning("Skipping malformed place place_id=%s: %s", place.get("place_id"), exc)
                continue
            if converted is not None:
                results.append(converted)

        logger.info(
            "Found %d building places (%d total) for lat=%s lon=%s radius=%s",
            len(results),
            len(raw_places),
            coordinate.latitude,
            coordinate.longitude,
            radius,
        )

        self._cache.set(cache_key, [result.model_dump() for result in results], self.cache_ttl)
        return results

    async def place_details(self, place_id: str) -> Optional[PlaceResult]:
        params = {
            "place_id": place_id,
            "key": self.api_key,
            "fields": "name,formatted_address,geometry,rating,user_ratings_total,types,vicinity,business_status",
        }
        try:
            payload = await self._get_json("details/json", params)
            _check_status(payload)
        except (httpx.HTTPError, ValueError, PlacesProviderError) as exc:
            logger.warning("Place details failed for place_id=%s: %s", place_id, exc)
            return None

        result = payload.get("result")
        if not isinstance(result, dict):
            return None

        try:
            place = _convert_place(result, place_id=place_id)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Malformed place details for place_id=%s: %s", place_id, exc)
            return None
        if place is not None:
            # Details responses prefer the full postal address over the vicinity.
            place.address = result.get("formatted_address") or result.get("vicinity") or ""
        return place

    def clear_cache(self, coordinate: Coordinate, radius: float) -> None:
        self._cache.delete(places_cache_key(coordinate, radius))
