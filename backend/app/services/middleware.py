"""
Request tracing for Bayedi Estimator.

Every request gets an id (the caller's X-Request-ID when sent). The id is
bound to ``request_id_var`` while the request runs, so pricing, quote and
order log lines carry it without passing it around. Requests that touch a
quote or an order are logged with that id as well.
"""
import os
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.services.logging_config import request_id_var

logger = logging.getLogger("bayedi-api.middleware")

SKIP_LOG_PATHS = {"/health", "/metrics"}
SLOW_REQUEST_MS = float(os.getenv("SLOW_REQUEST_MS", "1000"))

# Path parameter -> log field
_ENTITY_PARAMS = {"quote_id": "quote_id", "order_id": "order_id"}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Binds the request id, times the request and logs one line per request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        start_time = time.perf_counter()
        try:
            response: Response = await call_next(request)
        finally:
            request_id_var.reset(token)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path in SKIP_LOG_PATHS:
            return response

        extra = {
            "http_method": request.method,
            "http_path": request.url.path,
            "http_status": response.status_code,
            "request_id": request_id,
            "duration_ms": duration_ms,
        }
        # Routing fills path_params on the shared scope
        path_params = request.scope.get("path_params") or {}
        for param, field_name in _ENTITY_PARAMS.items():
            if param in path_params:
                extra[field_name] = path_params[param]

        if duration_ms > SLOW_REQUEST_MS:
            logger.warning(f"slow request ({duration_ms} ms > {SLOW_REQUEST_MS:g} ms)", extra=extra)
        else:
            logger.info("request completed", extra=extra)
        return response
