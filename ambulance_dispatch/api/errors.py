"""
Mapping of service results to HTTP responses.

Domain rejections keep the ``ActionResponse`` body and only change the
status code; database and Redis faults become a ``transient`` result
(503) that is safe to retry.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from fastapi import Response
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.api.schemas import ActionResponse, BookingResponse
from ambulance_dispatch.domain.enums import ErrorKind
from ambulance_dispatch.domain.results import ActionResult
from ambulance_dispatch.infrastructure.repositories import BookingRepository

logger = logging.getLogger(__name__)

HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.MISSING_REASON: 422,
    ErrorKind.TRANSIENT: 503,
}
CONFLICT = 409


def status_code_for(result: ActionResult) -> int:
    if result.success:
        return 200
    return HTTP_STATUS.get(result.error_kind, CONFLICT)


async def run_action(call: Callable[[], Awaitable[ActionResult]]) -> ActionResult:
    """Await a service call, turning infrastructure faults into a result."""
    try:
        return await call()
    except (SQLAlchemyError, RedisError):
        logger.exception("Transient failure while handling request")
        return ActionResult.reject(
            ErrorKind.TRANSIENT, "Temporary failure, please retry."
        )


async def action_response(
    db: AsyncSession,
    response: Response,
    result: ActionResult,
    booking_id: int | None = None,
) -> ActionResponse:
    response.status_code = status_code_for(result)
    booking = None
    target = result.booking_id or booking_id
    if target is not None and result.error_kind != ErrorKind.TRANSIENT:
        loaded = await BookingRepository(db).reload(target)
        if loaded is not None:
            booking = BookingResponse.model_validate(loaded)
    return ActionResponse(
        success=result.success,
        error_kind=result.error_kind.value if result.error_kind else None,
        message=result.message,
        warning=result.warning,
        booking=booking,
    )
