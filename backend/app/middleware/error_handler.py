from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import traceback
import logging
import os
from typing import Dict, Any

from services.error_types import PlanParseError, CriticalError
from services.result_assembler import fallback_payload

# Routes whose callers always receive the parse payload shape, even on failure
FALLBACK_PAYLOAD_PATHS = ("/api/v1/plans/parse",)

logger = logging.getLogger(__name__)


def create_error_response(error_type: str, message: str, error_code: str = None) -> Dict[str, Any]:
    """Create structured error response"""
    error = {
        "type": error_type,
        "message": message
    }
    if error_code:
        error["code"] = error_code
    return {"error": error}


async def plan_parse_exception_handler(request: Request, exc: PlanParseError):
    """Pipeline errors that escaped a route: critical ones keep their status code"""
    status_code = exc.status_code if isinstance(exc, CriticalError) else 422
    error_code = exc.error_code if isinstance(exc, CriticalError) else None
    logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(type(exc).__name__, exc.message, error_code)
    )


async def traceback_exception_handler(request: Request, exc: Exception):
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(tb)

    if "database" in str(exc).lower() or "connection" in str(exc).lower():
        error_type = "DatabaseError"
        status_code = 503
    else:
        error_type = "InternalServerError"
        status_code = 500

    message = tb if os.getenv("DEBUG") == "true" else "Internal server error"
    return JSONResponse(status_code=status_code, content=create_error_response(error_type, message))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Malformed request bodies are INVALID_REQUEST (400), not 422.

    Parse requests get the safe fallback payload so the client can still
    render the sentinel room; other routes get the structured error.
    """
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = " -> ".join(str(x) for x in first.get("loc", ()) if x != "body")
    message = f"{location}: {first.get('msg', 'Invalid request')}" if location else first.get("msg", "Invalid request")
    logger.info(f"Rejected {request.method} {request.url.path}: {message}")
    if request.url.path in FALLBACK_PAYLOAD_PATHS:
        payload = fallback_payload(None, f"Invalid request: {message}")
        payload["errorCode"] = "INVALID_REQUEST"
        return JSONResponse(status_code=400, content=payload)
    return JSONResponse(
        status_code=400,
        content=create_error_response("InvalidParseRequest", message, "INVALID_REQUEST")
    )
