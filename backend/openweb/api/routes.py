import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from openweb.api import subscribe
from openweb.core.metrics import snapshot as metrics_snapshot
from openweb.db.session import get_session, ping

logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(subscribe.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/health/ready", tags=["health"])
async def readiness(response: Response, session: AsyncSession = Depends(get_session)) -> dict[str, str]:
    try:
        ready = await ping(session)
    except SQLAlchemyError:
        logger.exception("readiness_db_check_failed")
        ready = False
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable"}
    return {"status": "ready"}


@api_router.get("/metrics", tags=["metrics"])
def metrics() -> dict:
    return metrics_snapshot()
