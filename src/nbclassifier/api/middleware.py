import logging
import time
from typing import Final
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from nbclassifier.api import metrics

logger = logging.getLogger("nbclassifier.api")

REQUEST_ID_HEADER: Final[str] = "x-request-id"

# Whole model payloads are accepted on POST /model, hence the generous cap.
MAX_PAYLOAD_BYTES: Final[int] = 16_000_000


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Request tracing, payload limits, logging and metrics for every request.

    - Propagates the caller's `x-request-id` or assigns a new one, and echoes
      it on the response.
    - Rejects bodies larger than `MAX_PAYLOAD_BYTES` with 413 before any
      model is touched.
    - Records request count, latency and payload size on the
      `MetricsManager` stored in `app.state` by the lifespan function.
    - Emits one structured log line for the request and one for the response.

    Notes
    -----
    Latency is recorded in seconds for Prometheus and in milliseconds in logs.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        manager: metrics.MetricsManager | None = getattr(
            request.app.state, "metrics_manager", None
        )

        if manager is None:
            raise RuntimeError("Could not find metrics manager in app state.")

        request_id: str = request.headers.get(REQUEST_ID_HEADER, str(uuid.uuid4()))
        request_start: float = time.perf_counter()

        payload: bytes = await request.body()
        manager.payload_size.observe(len(payload))

        if len(payload) > MAX_PAYLOAD_BYTES:
            logger.warning(
                "payload too large",
                extra={"request_id": request_id, "payload_bytes": len(payload)},
            )
            return Response(
                status_code=413,
                content="Payload too large.",
                headers={REQUEST_ID_HEADER: request_id},
            )

        logger.info(
            "request",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "client": request.client.host if request.client else None,
            },
        )

        response: Response = await call_next(request)

        request_duration_sec: float = time.perf_counter() - request_start

        # Label by route template so every model name shares one series.
        route = request.scope.get("route")
        route_path: str = getattr(route, "path", request.url.path)

        manager.request_time.labels(route=route_path, method=request.method).observe(
            request_duration_sec
        )
        manager.requests.labels(
            route=route_path, method=request.method, status=str(response.status_code)
        ).inc()

        response.headers[REQUEST_ID_HEADER] = request_id

        logger.info(
            "response",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status": response.status_code,
                "duration_ms": round(request_duration_sec * 1000, 2),
            },
        )
        return response
