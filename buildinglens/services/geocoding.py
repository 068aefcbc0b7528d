"""Reverse geocoding through an ordered chain of providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

import httpx

from buildinglens.cache import TTLCache
from buildinglens.schemas import CandidateSource, Coordinate, GeocodeResult

logger = logging.getLogger(__name__)

GOOGLE_GEOCODING_URL = "https://maps.googleapis.com/maps/api/geocode/json"
NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org"
USER_AGENT = "BuildingLens/1.0"
CACHE_PREFIX = "geocode:"

NOMINATIM_NAME_KEYS = ("building", "house", "amenity", "shop", "office")


class GeocodingProviderError(RuntimeError):
    """Raised when a geocoding provider answers with an error."""


def geocode_cache_key(coordinate: Coordinate) -> str:
    return f"{CACHE_PREFIX}{coordinate.latitude:.6f},{coordinate.longitude:.6f}"


class GeocodingProvider(ABC):
    source: CandidateSource

    def __init__(self, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return self.source.value

    def _client(self, headers: Optional[Dict[str, str]] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, headers=headers, transport=self._transport)

    @abstractmethod
    async def reverse_geocode(self, coordinate: Coordinate) -> Optional[GeocodeResult]:
        """Return the best building-level match at ``coordinate`` or None."""


class GoogleGeocodingProvider(GeocodingProvider):
    source = CandidateSource.GOOGLE_GEOCODING

    def __init__(self, api_key: str, url: str = GOOGLE_GEOCODING_URL, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.url = url

    async def reverse_geocode(self, coordinate: Coordinate) -> Optional[GeocodeResult]:
        params = {
            "latlng": f"{coordinate.latitude},{coordinate.longitude}",
            "key": self.api_key,
            "result_type": "premise|street_address|route",
        }
        async with self._client() as client:
            response = await client.get(self.url, params=params)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Geocoding API returned a non-object payload")

        status = payload.get("status")
        if status == "ZERO_RESULTS":
            return None
        if status != "OK":
            raise GeocodingProviderError(payload.get("error_message") or str(status))

        results = payload.get("results") or []
        if not results:
            return None
        return _convert_google_result(results[0])


def _convert_google_result(result: Dict[str, Any]) -> Optional[GeocodeResult]:
    location = (result.get("geometry") or {}).get("location") or {}
    if location.get("lat") is None or location.get("lng") is None:
        return None

    components = result.get("address_components") or []
    name = None
    for component in components:
        types = component.get("types") or []
        if "premise" in types or "point_of_interest" in types:
            name = component.get("long_name")
            break

    return GeocodeResult(
        name=name,
        address=result.get("formatted_address") or "",
        coordinates=Coordinate(latitude=float(location["lat"]), longitude=float(location["lng"])),
        place_id=result.get("place_id"),
        source=CandidateSource.GOOGLE_GEOCODING,
        metadata={
            "addressComponents": components,
            "locationType": (result.get("geometry") or {}).get("location_type"),
            "types": result.get("types") or [],
        },
    )


class NominatimProvider(GeocodingProvider):
    source = CandidateSource.NOMINATIM

    def __init__(self, base_url: str = NOMINATIM_BASE_URL, email: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.email = email

    async def reverse_geocode(self, coordinate: Coordinate) -> Optional[GeocodeResult]:
        headers = {"User-Agent": USER_AGENT}
        if self.email:
            headers["Referer"] = self.email
        params = {
            "format": "json",
            "lat": f"{coordinate.latitude:.7f}",
            "lon": f"{coordinate.longitude:.7f}",
            "zoom": 18,
            "addressdetails": 1,
        }

        async with self._client(headers=headers) as client:
            response = await client.get(f"{self.base_url}/reverse", params=params)
        response.raise_for_status()
        data = response.json()

        if not isinstance(data, dict):
            return None
        if data.get("error"):
            raise GeocodingProviderError(str(data["error"]))
        if data.get("lat") is None or data.get("lon") is None:
            return None

        address = data.get("address") or {}
        name = next((address[key] for key in NOMINATIM_NAME_KEYS if address.get(key)), None)
        place_id = data.get("place_id")

        return GeocodeResult(
            name=name,
            address=data.get("display_name") or "",
            coordinates=Coordinate(latitude=float(data["lat"]), longitude=float(data["lon"])),
            place_id=str(place_id) if place_id is not None else None,
            source=CandidateSource.NOMINATIM,
            metadata={
                "osmType": data.get("osm_type"),
                "osmId": data.get("osm_id"),
                "category": data.get("category"),
                "type": data.get("type"),
                "address": address,
            },
        )


class ReverseGeocoder:
    """Tries each provider in order and returns the first result."""

    def __init__(
        self,
        providers: Sequence[GeocodingProvider],
        cache: Optional[TTLCache] = None,
        cache_ttl: int = 2592000,
    ):
        self.providers = list(providers)
        self.cache_ttl = cache_ttl
        self._cache = cache if cache is not None else TTLCache(ttl=cache_ttl)

    async def reverse_geocode(self, coordinate: Coordinate) -> Optional[GeocodeResult]:
        cache_key = geocode_cache_key(coordinate)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Geocoding cache hit for lat=%s lon=%s", coordinate.latitude, coordinate.longitude)
            return GeocodeResult.model_validate(cached)

        for provider in self.providers:
            try:
                result = await provider.reverse_geocode(coordinate)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "%s reverse geocoding failed for lat=%s lon=%s: %s",
                    provider.name,
                    coordinate.latitude,
                    coordinate.longitude,
                    exc,
                )
                continue

            if result is None:
                logger.info("%s returned no result for lat=%s lon=%s", provider.name, coordinate.latitude, coordinate.longitude)
                continue

            logger.info(
                "Reverse geocoded lat=%s lon=%s with %s (named=%s)",
                coordinate.latitude,
                coordinate.longitude,
                provider.name,
                bool(result.name),
            )
            self._cache.set(cache_key, result.model_dump(), self.cache_ttl)
            return result

        return None

    def clear_cache(self, coordinate: Coordinate) -> None:
        self._cache.delete(geocode_cache_key(coordinate))
