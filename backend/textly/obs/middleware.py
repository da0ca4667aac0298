"""ASGI middleware for metrics, logging, and request context binding."""

from __future__ import annotations

import time
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from textly.infra.request import build_request_context
from textly.obs import logging as obs_logging
from textly.obs import metrics


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	if route and getattr(route, "path", None):
		return route.path  # type: ignore[return-value]
	return request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	"""Bind request id / hashed IP log context and record request metrics."""

	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("textly.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		context = build_request_context(request)
		request.state.request_context = context
		token = obs_logging.bind_context(
			request_id=context.request_id,
			route=request.url.path,
			ip_hash=context.ip_hash,
		)
		start = time.perf_counter()
		status_code = 500
		response: Optional[Response] = None
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._logger.exception(
				"http_request_error",
				extra={"method": request.method, "path": request.url.path},
			)
			raise
		finally:
			elapsed_seconds = time.perf_counter() - start
			if self._enabled:
				metrics.observe_request(_route_template(request), request.method, status_code, elapsed_seconds)
				self._logger.info(
					"http_request",
					extra={
						"status": status_code,
						"method": request.method,
						"latency_ms": round(elapsed_seconds * 1000, 3),
					},
				)
			obs_logging.reset_context(token)

		if "X-Request-Id" not in response.headers:
			response.headers["X-Request-Id"] = context.request_id
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
