"""Error types raised by the order lifecycle and their HTTP translation."""

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shared.core import get_logger

logger = get_logger(__name__)


class OrderServiceError(Exception):
    """Base exception for all order service errors."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "error", "code": self.error_code, "message": self.message}


class ValidationError(OrderServiceError):
    """Raised for caller-correctable input: bad fields, illegal transitions, stock shortfalls."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation failed", errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFoundError(OrderServiceError):
    """Raised when a referenced order, item or product does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found", resource: Optional[str] = None):
        self.resource = resource
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.resource:
            body["resource"] = self.resource
        return body


class ConflictError(OrderServiceError):
    """Raised on uniqueness violations in the store."""

    status_code = 409
    error_code = "CONFLICT_ERROR"

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message)


class AuthenticationError(OrderServiceError):
    status_code = 401
    error_code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class AuthorizationError(OrderServiceError):
    status_code = 403
    error_code = "AUTHORIZATION_ERROR"

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message)


class ExternalServiceError(OrderServiceError):
    """Raised when a downstream collaborator (products, payment provider) fails."""

    status_code = 502
    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, message: str = "External service error", service: Optional[str] = None):
        self.service = service
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.service:
            body["service"] = self.service
        return body


def register_exception_handlers(app: FastAPI) -> None:
    """Map service errors and database failures onto JSON error responses."""

    @app.exception_handler(OrderServiceError)
    async def handle_service_error(request: Request, exc: OrderServiceError) -> JSONResponse:
        logger.warning(
            f"{exc.error_code}: {exc.message}",
            extra={'extra_fields': {'path': request.url.path, 'status_code': exc.status_code}}
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning(f"Integrity violation on {request.url.path}: {exc.orig}")
        return JSONResponse(status_code=409, content=ConflictError().to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(f"Database error on {request.url.path}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"status": "error", "code": "DATABASE_ERROR", "message": "Database error occurred"},
        )
