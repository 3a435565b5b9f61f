"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health -- health check with the dispatch queue depth
"""

import logging

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError

from ambulance_dispatch.api.dependencies import get_services
from ambulance_dispatch.api.schemas import HealthResponse
from ambulance_dispatch.services.factory import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(services: Services = Depends(get_services)):
    try:
        queued = await services.queue.pending_count()
    except RedisError:
        logger.warning("Health check could not reach Redis")
        return HealthResponse(status="degraded")
    return HealthResponse(queued_dispatches=queued)
