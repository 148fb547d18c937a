import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)


class AppError(Exception):
    """Base for every error a caller can see.

    `code` is the error kind sent in the body, `status_code` the HTTP status.
    """

    code = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class BadRequest(AppError):
    code = "BadRequest"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "bad request"


class Unauthorized(AppError):
    code = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "unauthorized"


class InvalidFormat(Unauthorized):
    default_message = "invalid authorization header format"


class InvalidToken(Unauthorized):
    default_message = "invalid token"


class TokenExpired(Unauthorized):
    default_message = "token expired"


class TokenRevoked(Unauthorized):
    default_message = "token revoked"


class TokenNotFound(Unauthorized):
    default_message = "token not found"


class InvalidCredentials(Unauthorized):
    default_message = "invalid credentials"


class Forbidden(AppError):
    code = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "forbidden"


class PermissionDenied(Forbidden):
    default_message = "permission denied"


class NotFound(AppError):
    code = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "not found"


class ResourceNotFound(NotFound):
    def __init__(self, resource: str = "resource", message: str | None = None):
        self.resource = resource
        super().__init__(message or f"{resource} not found")


class ForeignKeyViolation(NotFound):
    default_message = "referenced resource does not exist"


class Conflict(AppError):
    code = "Conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "conflict"


class UniqueViolation(Conflict):
    default_message = "resource already exists"


class PayloadTooLarge(AppError):
    code = "PayloadTooLarge"
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_message = "payload too large"


class Internal(AppError):
    pass


def error_response(exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc.__cause__)
    return error_response(exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = first.get("msg", "validation failed")
    if field:
        message = f"{field}: {message}"
    return error_response(BadRequest(message))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled error on %s %s", request.method, request.url.path)
    return error_response(Internal())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
