"""
Application error taxonomy.

Every error carries a stable machine-readable code and the HTTP status the
API layer answers with. Handlers in `tripdesk.core.exceptions` render them
into the standard error envelope.
"""

import uuid
from contextlib import contextmanager
from typing import Optional

import structlog

logger = structlog.get_logger()


class AppError(Exception):
    code = "SRV_6001"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    code = "VAL_2001"
    status_code = 400
    default_message = "Validation failed"


class InvalidArgumentError(ValidationError):
    """Malformed or unknown identity reference passed to a service call."""


class NotFoundError(AppError):
    code = "RES_3001"
    status_code = 404
    default_message = "Resource not found"


class AuthenticationError(AppError):
    code = "AUTH_1002"
    status_code = 401
    default_message = "Invalid authentication token"


class AuthorizationError(AppError):
    code = "AUTH_1006"
    status_code = 403
    default_message = "Access forbidden"


class ServerError(AppError):
    code = "SRV_6001"
    status_code = 500
    default_message = "Internal server error"


def parse_uuid(value, label: str = "ID") -> uuid.UUID:
    """Parse an identity reference, raising ValidationError when malformed."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"Invalid {label}")


@contextmanager
def server_error_boundary(event: str, message: str, **context):
    """
    Convert unexpected exceptions into a generic ServerError.

    AppErrors pass through untouched; anything else is logged with the
    given context and replaced so internals never reach the response body.
    """
    try:
        yield
    except AppError:
        raise
    except Exception as e:
        logger.error(event, error=str(e), **context)
        raise ServerError(message) from e
