"""Operations endpoints: health checks and Prometheus metrics."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError

from chatline.infra.redis import redis_client
from chatline.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ops"])


async def require_metrics_access() -> None:
	if settings.obs_metrics_public or settings.is_dev():
		return
	raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health")
async def health_live(request: Request) -> dict:
	container = request.app.state.realtime
	return {"status": "ok", "online_users": len(container.registry)}


@router.get("/health/ready")
async def health_ready() -> Response:
	checks = {"redis": "ok"}
	try:
		await redis_client.ping()
	except (RedisError, OSError):
		logger.warning("readiness redis ping failed", exc_info=True)
		checks["redis"] = "unavailable"
	# Redis only backs event budgets, which fail open
	return JSONResponse(content={"status": "ok", "checks": checks}, status_code=status.HTTP_200_OK)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
