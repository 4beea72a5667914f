import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

INVALID_TOKEN_HEADERS = {"WWW-Authenticate": 'Bearer error="invalid_token"'}


class OAuthException(Exception):
    """RFC 6749 error, rendered as ``{error, error_description}``."""

    def __init__(
        self,
        error: str,
        description: str | None = None,
        status_code: int = 400,
        headers: dict | None = None,
    ):
        super().__init__(description or error)
        self.error = error
        self.description = description
        self.status_code = status_code
        self.headers = headers or {}


class AbilityException(Exception):
    """Typed ability-layer failure, rendered as ``{error, message}``."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int = 400,
        headers: dict | None = None,
    ):
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code
        self.headers = headers or {}


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        headers: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.headers = headers or {}


def invalid_token(description: str = "The access token is invalid") -> OAuthException:
    return OAuthException(
        error="invalid_token",
        description=description,
        status_code=401,
        headers=INVALID_TOKEN_HEADERS,
    )


def attach_exception_handlers(app: FastAPI):

    @app.exception_handler(OAuthException)
    async def oauth_exception_handler(request: Request, exc: OAuthException):
        body = {"error": exc.error}

        if exc.description:
            body["error_description"] = exc.description

        return JSONResponse(
            status_code=exc.status_code,
            content=body,
            headers={"Cache-Control": "no-store", **exc.headers},
        )

    @app.exception_handler(AbilityException)
    async def ability_exception_handler(request: Request, exc: AbilityException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error,
                "message": exc.message,
            },
            headers=exc.headers,
        )

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": False,
                "message": exc.message,
            },
            headers=exc.headers
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "error_description": "Internal server error",
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        messages = []

        for err in exc.errors():
            loc = err.get("loc", [])
            err_type = err.get("type", "")

            where = loc[0] if len(loc) > 0 else "request"
            field = loc[-1] if len(loc) > 1 else "field"

            if err_type == "missing":
                messages.append(f"missing field '{field}' in {where}")
            else:
                messages.append(f"invalid field '{field}' in {where}")

        # remove duplicates while preserving order
        messages = list(dict.fromkeys(messages))

        return JSONResponse(
            status_code=400,
            content={
                "error": "invalid_request",
                "error_description": "Invalid request: " + ", ".join(messages),
            },
        )
