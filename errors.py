from typing import Any, Optional

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()


def first_error_message(errors: list[dict]) -> str:
    if not errors:
        return "Invalid request"
    message = errors[0].get("msg", "Invalid request")
    # Messages from our own validators arrive as "Value error, ..."
    return message.removeprefix("Value error, ")


def _error_field(errors: list[dict]) -> Optional[str]:
    if not errors:
        return None
    # Drop the "body"/"query"/"path" prefix FastAPI puts on locations
    loc = [str(part) for part in errors[0].get("loc", ())[1:]]
    return ".".join(loc) or None


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{"message": ...}``, the shape the frontend reads."""

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException) -> Response:
        return JSONResponse(
            status_code=int(exc.status_code),
            content={"message": exc.detail},
            headers=dict(exc.headers or {}),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        errors = exc.errors()
        payload: dict[str, Any] = {"message": first_error_message(errors)}
        field = _error_field(errors)
        if field:
            payload["field"] = field
        logger.info("Request rejected", path=request.url.path, message=payload["message"], field=field)
        return JSONResponse(status_code=400, content=payload)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
        logger.exception("Unhandled exception", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"message": "Internal server error"})
