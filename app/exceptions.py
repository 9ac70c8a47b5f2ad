"""Custom exception classes and global exception handlers."""

import logging
import traceback

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class EventDeskException(Exception):
    """Base exception for all EventDesk-specific errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(EventDeskException):
    """Requested document or asset is absent in every known location."""

    def __init__(self, resource: str = "Resource", message: str | None = None):
        super().__init__(message or f"{resource} not found", 404)


class ValidationException(EventDeskException):
    """Validation error exception with field-level errors."""

    def __init__(self, errors: list[dict] | str):
        if isinstance(errors, str):
            errors = [{"field": "general", "message": errors}]
        super().__init__("Validation failed", 422)
        self.errors = errors


class ConfigurationError(EventDeskException):
    """A required setting or credential is missing. Never retried."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message, 500)
        self.missing = missing or []


class TransportError(EventDeskException):
    """Network or authentication failure talking to SMTP or the object store."""

    def __init__(self, message: str):
        super().__init__(message, 502)


class DeliveryFailedError(EventDeskException):
    """Every delivery attempt failed; carries the last underlying error."""

    def __init__(self, message: str, last_error: BaseException | None = None, attempts: int = 0):
        super().__init__(message, 502)
        self.last_error = last_error
        self.attempts = attempts


def create_exception_handlers():
    """Create the JSON exception handlers registered on the app."""

    async def eventdesk_exception_handler(request: Request, exc: EventDeskException):
        """Handle EventDesk custom exceptions."""
        logger.warning(
            f"{type(exc).__name__} on {request.method} {request.url.path}: "
            f"{exc.message} (status={exc.status_code})"
        )
        content = {
            "status": "error",
            "message": exc.message,
        }
        if hasattr(exc, "errors"):
            content["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=content)

    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}")
        logger.error(f"Exception: {type(exc).__name__}: {exc}")
        tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        logger.error("".join(tb_lines))

        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "An unexpected error occurred",
            },
        )

    return {
        EventDeskException: eventdesk_exception_handler,
        Exception: generic_exception_handler,
    }
