"""Standard error response schema for Syrinx services.

Every JSON error body has the same shape: ``{"success": false, "error": "<message>"}``.
"""

from __future__ import annotations

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.requests import Request


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


def error_response(message: str, status_code: int = 500) -> JSONResponse:
    """Create a standardized error JSON response."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
    )


def format_validation_errors(errors: list[dict]) -> str:
    """Flatten pydantic error dicts into one readable message.

    ``[{"loc": ("body", "speed"), "msg": "Input should be less than or equal to 4"}]``
    becomes ``"speed: Input should be less than or equal to 4"``.
    """
    parts = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        msg = str(err.get("msg", "invalid value"))
        parts.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request"


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request schema violations as 400 with the standard body."""
    return error_response(format_validation_errors(list(exc.errors())), status_code=400)
