import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from buildinglens import schemas
from buildinglens.services.identify import IdentificationError, IdentificationService, get_identification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/identify", tags=["identify"])


@router.post("", response_model=schemas.IdentifyResponse)
async def identify_building(
    request: schemas.IdentifyRequest,
    service: IdentificationService = Depends(get_identification_service),
) -> schemas.IdentifyResponse:
    """Rank the buildings the user is most likely looking at."""

    logger.info(
        "Identify request lat=%s lon=%s heading=%s radius=%s",
        request.latitude,
        request.longitude,
        request.heading,
        request.search_radius,
    )

    try:
        result = await service.identify(
            latitude=request.latitude,
            longitude=request.longitude,
            heading=request.heading,
            search_radius=request.search_radius,
        )
    except IdentificationError as exc:
        logger.error("Failed to identify building: %s (context=%s)", exc, exc.context())
        raise HTTPException(status_code=502, detail="Failed to identify building") from exc

    return schemas.IdentifyResponse(
        candidates=result.candidates,
        query=schemas.IdentifyQuery(
            latitude=request.latitude,
            longitude=request.longitude,
            heading=request.heading,
            search_radius=result.search_radius,
        ),
        metadata=schemas.IdentifyMetadata(
            search_center=result.search_center,
            timestamp=result.timestamp,
            result_count=len(result.candidates),
        ),
    )


@router.get("/weights")
def scoring_weights(
    service: IdentificationService = Depends(get_identification_service),
) -> Dict[str, Any]:
    return service.scorer.weights.as_dict()
