"""
Access log middleware.

Logs one structured record per request with the method, host, path,
status code and response time.
"""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from panacea.config import StructuredLogger
from panacea.utils.helpers import strip_port

access_logger = StructuredLogger("panacea.access")


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Middleware to log proxied requests."""

    async def dispatch(self, request: Request, call_next):
        """
        Process HTTP request and log the outcome.

        Args:
            request: The incoming HTTP request
            call_next: The next middleware/handler in the chain

        Returns:
            Response: The HTTP response
        """
        start_time = time.time()

        response = await call_next(request)

        access_logger.log_request(
            method=request.method,
            host=strip_port(request.headers.get("host", "")),
            path=request.url.path,
            status_code=response.status_code,
            response_time=(time.time() - start_time) * 1000,
            client_ip=request.client.host if request.client else "unknown"
        )

        return response
