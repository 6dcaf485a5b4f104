"""Health and readiness endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.request_id import get_request_id
from app.core.config import settings
from app.core.logging import get_logger
from app.core.redis_client import is_redis_available
from app.db.session import get_db

logger = get_logger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"


class ReadinessCheck(BaseModel):
    status: Literal["ok", "degraded", "down"]
    message: str | None = None


class ReadinessResponse(BaseModel):
    status: Literal["ok", "degraded", "down"]
    checks: dict[str, ReadinessCheck]
    request_id: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Returns 200 if the API process is running.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Checks the database and, when the shared rate limiter is configured, Redis.",
)
async def readiness_check(request: Request, db: Session = Depends(get_db)):
    checks: dict[str, ReadinessCheck] = {}

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = ReadinessCheck(status="ok")
    except SQLAlchemyError as e:
        logger.error("Readiness database check failed", extra={"error": str(e)})
        checks["database"] = ReadinessCheck(status="down", message="Database unreachable")

    if settings.RATE_LIMIT_BACKEND == "redis":
        if is_redis_available():
            checks["redis"] = ReadinessCheck(status="ok")
        else:
            # Limiter fails open, so the API keeps serving
            checks["redis"] = ReadinessCheck(status="degraded", message="Redis unreachable")

    statuses = {check.status for check in checks.values()}
    overall = "down" if "down" in statuses else "degraded" if "degraded" in statuses else "ok"
    body = ReadinessResponse(status=overall, checks=checks, request_id=get_request_id(request))
    code = status.HTTP_503_SERVICE_UNAVAILABLE if overall == "down" else status.HTTP_200_OK
    return JSONResponse(status_code=code, content=body.model_dump())
