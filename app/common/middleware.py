"""
Middleware for handling multi-tenancy
"""
from fastapi import status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging

logger = logging.getLogger(__name__)

BUSINESS_HEADER = "X-Business-ID"


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Middleware that extracts business_id from X-Business-ID header
    and sets it on request.state for use in endpoint handlers
    """

    # Paths that don't require business context
    EXEMPT_PATHS = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    ]

    def _is_exempt(self, path: str) -> bool:
        return path == "/" or any(path.startswith(prefix) for prefix in self.EXEMPT_PATHS)

    async def dispatch(self, request, call_next):
        if self._is_exempt(request.url.path):
            return await call_next(request)

        # Skip for OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        business_header = request.headers.get(BUSINESS_HEADER)

        if not business_header:
            return JSONResponse(
                content={"error": "missing_business_context", "message": f"Missing {BUSINESS_HEADER} header"},
                status_code=status.HTTP_400_BAD_REQUEST
            )

        try:
            business_id = UUID(business_header)
        except ValueError:
            return JSONResponse(
                content={"error": "invalid_business_context", "message": f"Invalid {BUSINESS_HEADER} format. Must be a valid UUID"},
                status_code=status.HTTP_400_BAD_REQUEST
            )

        request.state.business_id = business_id
        logger.debug(f"Request to {request.url.path} with business_id: {business_id}")

        return await call_next(request)
