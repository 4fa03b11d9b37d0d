# backend/core/logging_config.py
"""
Process-wide logging setup plus the per-request access log middleware.
"""
import logging
import time
import uuid

from fastapi import Request

from core.config import settings

logger = logging.getLogger("request")

REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
    )


async def request_logger(request: Request, call_next):
    """Tag each request with an id and log method, path, status and duration."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        f"[{request_id}] {request.method} {request.url.path} "
        f"→ {response.status_code} ({elapsed_ms:.1f}ms)"
    )
    return response
