import logging
from typing import Any, Callable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """
    Base class for errors rendered as `{error: {code, message}}`.

    `reason` carries the fine-grained cause for logs only; it is never part
    of the response body.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_SERVER_ERROR"
    message = "Internal server error"

    def __init__(self, reason: str | None = None, message: str | None = None):
        super().__init__(reason or self.message)
        self.reason = reason
        if message is not None:
            self.message = message


class InvalidCredentials(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    message = "Invalid username or password"


class InvalidAccessToken(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_ACCESS_TOKEN"
    message = "Invalid or expired token"


class InvalidRefreshToken(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_REFRESH_TOKEN"
    message = "Invalid or expired refresh token"


class RefreshTokenRevoked(InvalidRefreshToken):
    """Signature and expiry are fine but the token is no longer registered."""


class UsernameTaken(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "USERNAME_ALREADY_EXISTS"
    message = "Username is already registered"


class TaskNotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "TASK_NOT_FOUND"
    message = "Task not found"


class RateLimited(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"
    message = "Too many requests. Please try again later."

    def __init__(self, code: str, reason: str | None = None):
        super().__init__(reason)
        self.code = code


class InternalFailure(AppError):
    """A hashing or signing primitive failed; not attributable to the caller."""


def payload_error_code(code: str) -> Callable:
    """
    Tag an endpoint with the error code used when its request fails validation.

    The endpoint function is returned unchanged so FastAPI still sees its
    signature.
    """

    def decorator(fn: Callable) -> Callable:
        fn.payload_error_code = code
        return fn

    return decorator


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    headers: dict | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        body["error"]["details"] = details

    request_id = _request_id(request)
    if request_id:
        body["requestId"] = request_id
        headers = {**(headers or {}), "X-Request-Id": request_id}

    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, InternalFailure):
        logger.error(
            "Internal failure on %s %s: %s",
            request.method,
            request.url.path,
            exc.reason,
            exc_info=exc.__cause__ or exc,
        )
    elif exc.reason:
        logger.info("%s on %s: %s", exc.code, request.url.path, exc.reason)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return error_response(
        request, exc.status_code, exc.code, exc.message, headers=headers
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    route = request.scope.get("route")
    endpoint = getattr(route, "endpoint", None)
    code = getattr(endpoint, "payload_error_code", "VALIDATION_ERROR")

    details = [
        {
            "path": [part for part in err.get("loc", ()) if part != "body"],
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return error_response(
        request, status.HTTP_400_BAD_REQUEST, code, "Invalid payload", details
    )


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        code, message = "ROUTE_NOT_FOUND", "Route not found"
    elif exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        code, message = "METHOD_NOT_ALLOWED", "Method not allowed"
    else:
        code, message = "HTTP_ERROR", str(exc.detail)
    return error_response(
        request, exc.status_code, code, message, headers=getattr(exc, "headers", None)
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        AppError.code,
        AppError.message,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
