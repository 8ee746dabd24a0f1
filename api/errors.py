"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import (
    AuthError,
    DomainAlreadyRegisteredError,
    EmailNotVerifiedError,
    InvalidApiKeyError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    NotificationDeliveryError,
    PasswordNotSetError,
    SessionExpiredError,
    TransientStoreError,
    UnauthenticatedError,
    UnknownApiKeyError,
    UserAlreadyExistsError,
    UserNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5

# Exception kind -> (HTTP status, error code, message override)
# A None message means the exception's own message is safe to show.
ERROR_TABLE: dict[type[AuthError], tuple[int, str, str | None]] = {
    ValidationError: (422, ErrorCodes.VALIDATION_ERROR, None),
    InvalidApiKeyError: (401, ErrorCodes.API_KEY_REQUIRED, None),
    UnknownApiKeyError: (401, ErrorCodes.INVALID_API_KEY, None),
    DomainAlreadyRegisteredError: (409, ErrorCodes.DOMAIN_ALREADY_REGISTERED, None),
    UserAlreadyExistsError: (409, ErrorCodes.USER_ALREADY_EXISTS, None),
    InvalidCredentialsError: (401, ErrorCodes.INVALID_CREDENTIALS, "Invalid email or password"),
    PasswordNotSetError: (400, ErrorCodes.PASSWORD_NOT_SET, None),
    InvalidOrExpiredTokenError: (400, ErrorCodes.INVALID_TOKEN, "Token is invalid or has expired"),
    UnauthenticatedError: (401, ErrorCodes.NOT_AUTHENTICATED, None),
    SessionExpiredError: (401, ErrorCodes.SESSION_EXPIRED, None),
    UserNotFoundError: (401, ErrorCodes.USER_NOT_FOUND, None),
    EmailNotVerifiedError: (403, ErrorCodes.EMAIL_NOT_VERIFIED, None),
    NotificationDeliveryError: (
        502,
        ErrorCodes.EMAIL_DELIVERY_FAILED,
        "Failed to send email. Please try again.",
    ),
    TransientStoreError: (
        503,
        ErrorCodes.SERVICE_UNAVAILABLE,
        "Service temporarily unavailable. Please retry.",
    ),
}


def lookup_error(exc: AuthError) -> tuple[int, str, str | None]:
    """Table entry for the nearest mapped class in the exception's MRO."""
    for kind in type(exc).__mro__:
        if kind in ERROR_TABLE:
            return ERROR_TABLE[kind]
    return 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred"


def _field_errors(exc: RequestValidationError) -> list[dict]:
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "header")]
        details.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return details


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    async def auth_error_handler(request: Request, exc: AuthError):
        status_code, code, message = lookup_error(exc)
        if status_code >= 500:
            logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
        headers = (
            {"Retry-After": str(RETRY_AFTER_SECONDS)}
            if isinstance(exc, TransientStoreError)
            else None
        )
        details = exc.errors if isinstance(exc, ValidationError) else None
        return JSONResponse(
            status_code=status_code,
            headers=headers,
            content=error_response(code, message or str(exc), details).model_dump(mode="json"),
        )

    for exc_class in ERROR_TABLE:
        app.add_exception_handler(exc_class, auth_error_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = _field_errors(exc)
        message = details[0]["message"] if details else "Invalid request"
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                message,
                details,
            ).model_dump(mode="json"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = ErrorCodes.NOT_FOUND if exc.status_code == 404 else ErrorCodes.INTERNAL_ERROR
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(code, str(exc.detail)).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
            ).model_dump(mode="json"),
        )
