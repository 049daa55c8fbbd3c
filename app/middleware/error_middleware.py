"""
Error Handling Middleware

Maps workflow errors to HTTP responses and catches anything unhandled.
"""

import logging
from typing import Callable, Optional
from fastapi import Request, Response, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.core.exceptions import DeletionWorkflowError
from app.services.error_handler import error_handler
from app.services.result import ServiceResult

logger = logging.getLogger(__name__)


def raise_for_result(result: ServiceResult, operation: str, user_id: Optional[int] = None):
    """Return the value of a successful result, or raise the matching HTTPException."""
    if result.ok:
        return result.value
    raise_http_error(result.error, operation, user_id)


def raise_http_error(error: DeletionWorkflowError, operation: str, user_id: Optional[int] = None):
    error_report = error_handler.handle_error(error, user_id=user_id, operation=operation)
    raise HTTPException(
        status_code=error_handler.status_code_for(error),
        detail=error_report["detail"],
        headers={"X-Error-ID": error_report["error_id"]},
    )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for handling unhandled exceptions."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and handle any unhandled exceptions."""
        try:
            response = await call_next(request)
            return response

        except HTTPException as e:
            # Let FastAPI handle HTTP exceptions normally
            raise e

        except Exception as e:
            return self._handle_unhandled_exception(request, e)

    def _handle_unhandled_exception(self, request: Request, error: Exception) -> JSONResponse:
        """Log the error and return a generic body; internals are never exposed."""
        context = {
            "method": request.method,
            "url": str(request.url),
            "client_ip": request.client.host if request.client else None,
        }
        error_report = error_handler.handle_error(
            error=error,
            context=context,
            operation=f"{request.method} {request.url.path}"
        )

        return JSONResponse(
            status_code=error_handler.status_code_for(error),
            content={
                "error": True,
                "error_id": error_report["error_id"],
                "detail": error_report["detail"],
                "timestamp": error_report["timestamp"],
            },
            headers={"X-Error-ID": error_report["error_id"]}
        )
