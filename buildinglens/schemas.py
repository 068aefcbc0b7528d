from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue
from pydantic.alias_generators import to_camel

Metadata = Dict[str, JsonValue]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CandidateSource(str, Enum):
    GOOGLE_PLACES = "google_places"
    GOOGLE_GEOCODING = "google_geocoding"
    NOMINATIM = "nominatim"
    CACHE = "cache"


class Coordinate(CamelModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    model_config = ConfigDict(frozen=True)


class PlaceResult(CamelModel):
    place_id: str
    name: str
    address: str = ""
    coordinates: Coordinate
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    types: List[str] = Field(default_factory=list)
    vicinity: Optional[str] = None
    metadata: Metadata = Field(default_factory=dict)


class GeocodeResult(CamelModel):
    name: Optional[str] = None
    address: str = ""
    coordinates: Coordinate
    place_id: Optional[str] = None
    source: CandidateSource
    metadata: Metadata = Field(default_factory=dict)


class BuildingCandidate(CamelModel):
    id: Optional[str] = None
    external_id: Optional[str] = None
    name: Optional[str] = None
    address: str = ""
    coordinates: Coordinate
    distance: float = Field(default=0.0, ge=0.0)
    bearing: float = Field(default=0.0, ge=0.0, lt=360.0)
    bearing_diff: Optional[float] = Field(default=None, ge=0.0, le=180.0)
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    source: CandidateSource
    metadata: Metadata = Field(default_factory=dict)


class CachedBuildingRecord(CamelModel):
    id: Optional[str] = None
    external_id: Optional[str] = None
    source: str
    name: Optional[str] = None
    address: str = ""
    coordinates: Coordinate
    metadata: Metadata = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class IdentifyResult(CamelModel):
    candidates: List[BuildingCandidate] = Field(default_factory=list)
    search_radius: float
    search_center: Coordinate
    heading: Optional[float] = None
    timestamp: datetime


class IdentifyRequest(CamelModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    heading: Optional[float] = Field(default=None, ge=0.0, le=360.0)
    search_radius: Optional[float] = Field(default=None, gt=0.0)


class IdentifyQuery(CamelModel):
    latitude: float
    longitude: float
    heading: Optional[float] = None
    search_radius: float


class IdentifyMetadata(CamelModel):
    search_center: Coordinate
    timestamp: datetime
    result_count: int


class IdentifyResponse(CamelModel):
    candidates: List[BuildingCandidate]
    query: IdentifyQuery
    metadata: IdentifyMetadata


class DatabaseHealth(CamelModel):
    status: str
    message: Optional[str] = None


class HealthResponse(CamelModel):
    status: str
    timestamp: datetime
    services: Dict[str, DatabaseHealth]
    building_cache: Optional[Dict[str, JsonValue]] = None
