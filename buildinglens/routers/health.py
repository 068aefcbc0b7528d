import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from buildinglens import database, schemas
from buildinglens.services.identify import IdentificationService, get_identification_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=schemas.HealthResponse)
def health_check(
    service: IdentificationService = Depends(get_identification_service),
) -> JSONResponse:
    session_factory = service.building_cache.session_factory
    db_health = schemas.DatabaseHealth(status="up")
    building_cache = None

    try:
        database.ping(session_factory)
        building_cache = service.building_cache.stats()
    except Exception as exc:  # noqa: BLE001
        logger.error("Database health check failed: %s", exc)
        db_health = schemas.DatabaseHealth(status="down", message=str(exc))

    healthy = db_health.status == "up"
    response = schemas.HealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=datetime.now(timezone.utc),
        services={"database": db_health},
        building_cache=building_cache,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json", by_alias=True),
    )
