"""
Application exceptions and the FastAPI handler that renders them
"""
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger


class MedicoError(Exception):
    """Base error; carries the message shown to the user and an HTTP status."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(MedicoError):
    status_code = 401


class ValidationError(MedicoError):
    status_code = 400


class NotFoundError(MedicoError):
    status_code = 404


class AIGatewayError(MedicoError):
    """The chat-completion gateway is unconfigured or answered non-2xx."""

    status_code = 502


async def medico_error_handler(request: Request, exc: MedicoError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render body/query validation failures in the same {success, error} shape."""
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    message = "; ".join(messages) or "Invalid request"

    logger.info(f"{request.method} {request.url.path} rejected: {message}")
    return JSONResponse(status_code=422, content={"success": False, "error": message})
