"""
Centralized Error Handling
Maps domain errors, request validation failures and crashes onto ErrorResponseDTO bodies
"""
import traceback
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.exceptions import APIError
from app.core.logging_config import get_logger
from app.models.dto import ErrorResponseDTO

logger = get_logger(__name__)

# Request locations FastAPI prefixes onto validation error paths
_LOCATION_PREFIXES = ("body", "query", "path", "header")


class ErrorHandler:
    """Builds error bodies and logs each failure once with its request"""

    @staticmethod
    def create_error_response(
        error: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> ErrorResponseDTO:
        return ErrorResponseDTO(error=error, error_code=error_code, details=details or None)

    @staticmethod
    def respond(status_code: int, body: ErrorResponseDTO) -> JSONResponse:
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

    @staticmethod
    def log_error(error: Exception, request: Request, status_code: int) -> None:
        context = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
        }
        if isinstance(error, APIError):
            context["error_code"] = error.error_code

        # Client mistakes are routine; only server side failures carry a traceback
        if status_code >= 500:
            logger.error("Request failed", extra=context, exc_info=error)
        else:
            logger.warning("Request rejected", extra=context)

    @staticmethod
    def field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
        errors = []
        for error in exc.errors():
            path = [str(part) for part in error["loc"] if part not in _LOCATION_PREFIXES]
            errors.append({"field": ".".join(path), "message": error["msg"]})
        return errors


error_handler = ErrorHandler()


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    error_handler.log_error(exc, request, exc.status_code)
    body = error_handler.create_error_response(str(exc.detail), f"HTTP_{exc.status_code}")
    return error_handler.respond(exc.status_code, body)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies use the same field_errors shape as checkout validation"""
    error_handler.log_error(exc, request, status.HTTP_422_UNPROCESSABLE_ENTITY)
    body = error_handler.create_error_response(
        "Validation failed", "VALIDATION_ERROR", {"field_errors": error_handler.field_errors(exc)}
    )
    return error_handler.respond(status.HTTP_422_UNPROCESSABLE_ENTITY, body)


async def api_exception_handler(request: Request, exc: APIError) -> JSONResponse:
    error_handler.log_error(exc, request, exc.status_code)
    body = error_handler.create_error_response(exc.message, exc.error_code, exc.details)
    return error_handler.respond(exc.status_code, body)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    error_handler.log_error(exc, request, status.HTTP_500_INTERNAL_SERVER_ERROR)

    details = None
    message = "Internal server error"
    if getattr(request.app.state, "debug", False):
        message = str(exc)
        details = {
            "type": type(exc).__name__,
            "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }

    body = error_handler.create_error_response(message, "INTERNAL_ERROR", details)
    return error_handler.respond(status.HTTP_500_INTERNAL_SERVER_ERROR, body)


def register_exception_handlers(app) -> None:
    """Attach the handlers above to a FastAPI application"""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(APIError, api_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
