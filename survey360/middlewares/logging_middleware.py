import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from survey360.core.logger import get_logger
from survey360.core.tenancy import extract_tenant_slug

logger = get_logger("middleware")


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        tenant_slug = extract_tenant_slug(request.url.path) or "-"
        logger.info(
            "%s %s tenant=%s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            tenant_slug,
            response.status_code,
            elapsed_ms,
        )
        return response
