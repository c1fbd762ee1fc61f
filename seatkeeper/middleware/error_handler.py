"""
Error handling middleware: turns domain and database exceptions into JSON.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, TimeoutError as SQLTimeoutError
from starlette.middleware.base import BaseHTTPMiddleware

from ..utils.exceptions import (
    ConcurrencyError,
    ConflictError,
    ErrorCode,
    InternalError,
    NotFoundError,
    SeatkeeperError,
    ValidationError
)

logger = logging.getLogger(__name__)

STATUS_MAP = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SEAT_NOT_AVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.SEAT_HOLD_INVALID: status.HTTP_409_CONFLICT,
    ErrorCode.CONCURRENCY_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.DATABASE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware for error handling and response formatting."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        error_id = str(uuid4())

        try:
            return await call_next(request)
        except Exception as exc:
            return self.handle_exception(request, exc, error_id)

    def handle_exception(self, request: Request, exc: Exception, error_id: str) -> JSONResponse:
        """Map an exception to a status code and a structured body."""
        self._log_error(request, exc, error_id)

        if isinstance(exc, SeatkeeperError):
            return self._handle_seatkeeper_error(exc, error_id)
        elif isinstance(exc, PydanticValidationError):
            return self._handle_validation_error(exc, error_id)
        elif isinstance(exc, IntegrityError):
            return self._handle_integrity_error(exc, error_id)
        elif isinstance(exc, (OperationalError, SQLTimeoutError, DBAPIError)):
            return self._handle_database_error(exc, error_id)
        else:
            return self._handle_unexpected_error(exc, error_id)

    def _handle_seatkeeper_error(self, exc: SeatkeeperError, error_id: str) -> JSONResponse:
        status_code = STATUS_MAP.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        headers = {"Retry-After": "5"} if status_code == status.HTTP_503_SERVICE_UNAVAILABLE else None
        return self._error_response(status_code, exc, error_id, headers=headers)

    def _handle_validation_error(self, exc: PydanticValidationError, error_id: str) -> JSONResponse:
        field_errors: Dict[str, list] = {}
        for error in exc.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            field_errors.setdefault(field_path, []).append(error["msg"])

        return self._error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ValidationError("Request validation failed", field_errors=field_errors),
            error_id
        )

    def _handle_integrity_error(self, exc: IntegrityError, error_id: str) -> JSONResponse:
        error_message = str(exc.orig) if exc.orig is not None else str(exc)
        constraint_type = "unique" if "unique" in error_message.lower() else "unknown"

        return self._error_response(
            status.HTTP_409_CONFLICT,
            ConcurrencyError(
                "Data integrity constraint violation",
                details={"constraint_type": constraint_type}
            ),
            error_id
        )

    def _handle_database_error(self, exc: Exception, error_id: str) -> JSONResponse:
        return self._error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            InternalError(
                "Database service temporarily unavailable",
                details={"error_type": type(exc).__name__}
            ),
            error_id,
            headers={"Retry-After": "5"}
        )

    def _handle_unexpected_error(self, exc: Exception, error_id: str) -> JSONResponse:
        error = SeatkeeperError(
            "An unexpected error occurred",
            error_code=ErrorCode.INTERNAL_ERROR,
            details={"error_type": type(exc).__name__} if self.debug else None
        )
        content = self._body(error, error_id)

        # Include stack trace in debug mode
        if self.debug:
            content["debug"] = {"exception": str(exc), "traceback": traceback.format_exc()}

        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    def _error_response(
        self,
        status_code: int,
        error: SeatkeeperError,
        error_id: str,
        headers: Optional[Dict[str, str]] = None
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=self._body(error, error_id),
            headers=headers
        )

    @staticmethod
    def _body(error: SeatkeeperError, error_id: str) -> Dict[str, Any]:
        return {
            "error": error.to_dict(),
            "error_id": error_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **error.response_fields(),
        }

    def _log_error(self, request: Request, exc: Exception, error_id: str):
        """Log with a severity that matches who is at fault."""
        request_info = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

        if isinstance(exc, (ValidationError, NotFoundError, ConflictError)):
            logger.warning(
                f"Client error [{error_id}]: {exc.message}",
                extra={
                    "error_id": error_id,
                    "error_code": exc.error_code.value,
                    "request": request_info,
                    "details": exc.details
                }
            )
        elif isinstance(exc, SeatkeeperError):
            logger.error(
                f"System error [{error_id}]: {exc.message}",
                extra={
                    "error_id": error_id,
                    "error_code": exc.error_code.value,
                    "request": request_info,
                    "details": exc.details
                }
            )
        else:
            logger.error(
                f"Unexpected error [{error_id}]: {exc}",
                extra={
                    "error_id": error_id,
                    "error_type": type(exc).__name__,
                    "request": request_info
                },
                exc_info=exc
            )
