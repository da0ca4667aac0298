"""Operations endpoints providing health checks and metrics."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from textly.infra.redis import redis_client

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ops"])


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	if not redis_client.configured:
		return {"ok": False, "error": "not_configured"}
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
		return {"ok": True}
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": exc.__class__.__name__}


async def _postgres_status(request: Request, timeout: float = 0.3) -> Dict[str, Any]:
	datastore = getattr(request.app.state, "datastore", None)
	if datastore is None or datastore.pool is None:
		return {"ok": True, "mode": "memory"}
	try:
		async with datastore.pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
		return {"ok": True, "mode": "postgres"}
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Postgres readiness query failed", exc_info=True)
		return {"ok": False, "error": exc.__class__.__name__}


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(request: Request) -> Response:
	redis_state = await _redis_status()
	postgres_state = await _postgres_status(request)
	ok = bool(redis_state.get("ok") and postgres_state.get("ok"))
	return JSONResponse(
		status_code=200 if ok else 503,
		content={
			"status": "ok" if ok else "degraded",
			"checks": {"redis": redis_state, "postgres": postgres_state},
		},
	)


@router.get("/metrics")
async def prometheus_metrics() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
