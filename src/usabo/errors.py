"""Error taxonomy and the handlers that render it.

Learn: Services raise these domain errors; they never build HTTP
responses themselves. The handlers registered in main.py turn every
AuthError into a JSON body of the form {"message": "..."} with the
status code carried by the error class. Anything unexpected is logged
and collapsed to a generic 500 so storage errors never reach clients.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


class AuthError(Exception):
    """Base class for errors that map to a client-facing response."""

    status_code = 400
    message = "Bad request"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed or missing input the user can correct."""

    status_code = 400
    message = "Invalid request"


class InvalidCredentials(AuthError):
    """Wrong email or password. Same message whether the account exists or not."""

    status_code = 400
    message = "Invalid credentials"


class AccountExists(AuthError):
    """Duplicate registration, or an OAuth email owned by another account."""

    status_code = 400
    message = "User already exists"


class Unauthenticated(AuthError):
    status_code = 401
    message = "Access token required"


class TokenInvalid(AuthError):
    """Bad signature, malformed or expired bearer token."""

    status_code = 403
    message = "Invalid or expired token"


class NotFound(AuthError):
    status_code = 404
    message = "User not found"


class ProviderNotConfigured(AuthError):
    status_code = 501
    message = "OAuth provider not configured"


class UpstreamUnavailable(AuthError):
    """The identity provider could not be reached or answered garbage."""

    status_code = 502
    message = "Authentication provider unavailable"


class ConflictError(Exception):
    """A unique constraint rejected an insert.

    Raised by the credential store only. `field` names the colliding
    column when the database reports it ("email", "google_id",
    "github_id"), otherwise None.
    """

    def __init__(self, field: str | None = None):
        self.field = field
        super().__init__(f"Unique constraint violated: {field or 'unknown'}")


# ─── Handlers ───────────────────────────────────────────


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Body parse failures are user-correctable, so 400 not 422."""
    return JSONResponse(status_code=400, content={"message": "Invalid request body"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "request.unhandled_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=500, content={"message": "Server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
