from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import logging

from server_template.schemas.health_schemas import ErrorResponse

logger = logging.getLogger(__name__)


def generic_error_response() -> JSONResponse:
    return JSONResponse(status_code=500, content=ErrorResponse().model_dump())


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Last line of defence for request handlers.

    Any exception escaping a route is logged once with its traceback and the
    client gets a generic 500; no internal detail leaves the server. HTTP
    errors (404, HTTPException) are turned into responses further down the
    stack and never reach this layer.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error on {request.method} {request.url.path}")
            return generic_error_response()


async def json_body_error_handler(request: Request, exc: RequestValidationError):
    # Malformed JSON is a parsing fault, other validation errors stay 422
    if any(error.get("type") == "json_invalid" for error in exc.errors()):
        logger.error(f"Malformed JSON body on {request.method} {request.url.path}: {exc.errors()}")
        return generic_error_response()
    return await request_validation_exception_handler(request, exc)


def register_error_handlers(app: FastAPI) -> None:
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_exception_handler(RequestValidationError, json_body_error_handler)
