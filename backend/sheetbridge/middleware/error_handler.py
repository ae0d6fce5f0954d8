"""
Exception handlers for the HTTP surface.

Every failure leaves the service as
    {"error": {"type": ..., "message": ..., "code": ..., "details": ...}}
with the status code chosen by category.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sheetbridge.exceptions import AIError, CacheError, ConversionError, InputError, SheetBridgeError
from sheetbridge.utils.app_logger import get_logger

logger = get_logger(__name__)

STATUS_BY_ERROR = {
    InputError: status.HTTP_400_BAD_REQUEST,
    ConversionError: 422,
    AIError: status.HTTP_502_BAD_GATEWAY,
    CacheError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ErrorResponse:
    """Standardized error response structure"""

    @staticmethod
    def create_error_response(
        error_type: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"type": error_type, "message": message, "code": code}
        if details:
            body["details"] = details
        return {"error": body}


def status_for(exc: SheetBridgeError) -> int:
    for error_cls, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_cls):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def sheetbridge_error_handler(request: Request, exc: SheetBridgeError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse.create_error_response(
            InputError.category, "Request validation failed", "INVALID_INPUT", {"errors": errors}
        ),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse.create_error_response("HTTP Error", str(exc.detail), f"HTTP_{exc.status_code}"),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse.create_error_response(
            "Internal Server Error", "An unexpected error occurred.", "INTERNAL_ERROR"
        ),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SheetBridgeError, sheetbridge_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
