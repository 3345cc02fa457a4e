import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: object = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class UnauthenticatedError(AppException):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "UNAUTHENTICATED"

    def __init__(self) -> None:
        super().__init__("Missing authenticated user identity")


class ServerNotFoundError(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "SERVER_NOT_FOUND"

    def __init__(self, server_id: str) -> None:
        self.server_id = server_id
        super().__init__(f"Server {server_id} not found")


class ProductNotFoundError(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product {product_id} not found")


class TemplateNotFoundError(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template {template_id} not found")


class InvalidTransitionError(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "INVALID_TRANSITION"

    def __init__(self, current_status: str | None, action: str) -> None:
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot perform action '{action}' on server in status '{current_status}'",
            details={"current_status": current_status, "action": action},
        )


class InvalidSizingError(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "INVALID_SIZING"

    def __init__(self, field: str, value: int, allowed: list[int]) -> None:
        super().__init__(
            f"{field}={value} is not an offered size",
            details={"field": field, "value": value, "allowed": allowed},
        )


class ActionConflictError(AppException):
    """Another operation holds the server: it is in a transient status or won a race."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "ACTION_CONFLICT"

    def __init__(
        self, current_status: str | None, action: str, server_id: str | None = None
    ) -> None:
        self.server_id = server_id
        self.current_status = current_status
        self.action = action
        subject = f"Server {server_id}" if server_id else "Server"
        super().__init__(
            f"{subject} has an operation in progress; retry once it settles",
            details={"current_status": current_status, "action": action},
        )


class AddressPoolExhaustedError(AppException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "ADDRESS_POOL_EXHAUSTED"

    def __init__(self, datacenter: str) -> None:
        super().__init__(
            f"No free IP address in datacenter '{datacenter}'",
            details={"datacenter": datacenter},
        )


class WorkersUnavailableError(AppException):
    """The background workers are shutting down and accept no new jobs."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "WORKERS_UNAVAILABLE"

    def __init__(self, action: str, server_id: str | None = None) -> None:
        self.server_id = server_id
        super().__init__(
            f"Cannot accept '{action}' right now; retry shortly",
            details={"action": action},
        )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            exc.error_code,
            extra={
                "error_code": exc.error_code,
                "status_code": exc.status_code,
                "path": request.url.path,
                "detail": exc.message,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {"code": exc.error_code, "message": exc.message, "details": exc.details}
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Convert errors to plain dicts to ensure JSON serializability
        errors = [
            {
                "loc": list(e.get("loc", [])),
                "msg": e.get("msg", ""),
                "type": e.get("type", ""),
            }
            for e in exc.errors()
        ]
        logger.info(
            "Request validation failed",
            extra={"path": request.url.path, "error_count": len(errors)},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "details": errors,
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=True,
            extra={"path": request.url.path, "exc_type": type(exc).__name__},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "details": None,
                }
            },
        )
