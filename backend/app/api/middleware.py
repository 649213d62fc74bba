"""
Middleware components for EVA ERP Assistant
Logging, security headers and session tracking middleware
"""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.responses import JSONResponse
import logging
import time
import uuid
from typing import Callable

from app.core.dependencies import SESSION_HEADER
from app.core.exceptions import EVAException, ErrorSeverity
from app.models.conversation import generate_id
from app.utils.validators import SESSION_ID_PATTERN


logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Request ID for tracing
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        logger.info(
            f"[{request_id}] {request.method} {request.url.path} "
            f"from {request.client.host if request.client else 'unknown'}"
        )

        request.state.request_id = request_id

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            logger.info(
                f"[{request_id}] {response.status_code} "
                f"completed in {process_time:.3f}s"
            )

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{process_time:.3f}"
            return response

        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"[{request_id}] Request failed in {process_time:.3f}s: {type(e).__name__}: {e}",
                exc_info=True
            )

            error = EVAException(
                message="Internal server error",
                code="INTERNAL_SERVER_ERROR",
                severity=ErrorSeverity.HIGH,
                correlation_id=request_id
            )
            return JSONResponse(
                status_code=500,
                content=error.to_dict(),
                headers={
                    "X-Request-ID": request_id,
                    "X-Process-Time": f"{process_time:.3f}"
                }
            )


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Assigns a conversation session id to every request.

    A well-formed X-Session-ID header is reused; otherwise a new ``eva_`` id is
    generated. The id is exposed on ``request.state.session_id`` and echoed in
    the response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        session_id = request.headers.get(SESSION_HEADER)
        if not session_id or not SESSION_ID_PATTERN.fullmatch(session_id):
            session_id = generate_id("eva")
            logger.debug(f"Assigned new session id {session_id}")

        request.state.session_id = session_id
        response = await call_next(request)
        response.headers[SESSION_HEADER] = session_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware for adding security headers with path-based CSP logic"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        path = request.url.path

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"

        if path.startswith(("/docs", "/redoc", "/openapi.json")):
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "img-src 'self' data: https://fastapi.tiangolo.com; "
                "connect-src 'self';"
            )
        else:
            # API responses and exported documents
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "script-src 'self'; "
                "style-src 'self'; "
                "img-src 'self' data: https:; "
                "connect-src 'self' https:;"
            )

        return response
