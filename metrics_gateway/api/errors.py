"""Structured error payloads shared by every route.

Errors are reported as ``{"detail": {"code": ..., "message": ...}}`` where
``code`` is a stable machine-readable identifier. Retryable errors also carry
``retry_after_seconds``.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi.responses import JSONResponse


class _RequiredDetail(TypedDict):
    code: str
    message: str


class ErrorDetail(_RequiredDetail, total=False):
    retry_after_seconds: float


def error_detail(code: str, message: str, retry_after_seconds: float | None = None) -> ErrorDetail:
    """Create a standardized error detail payload."""
    detail: ErrorDetail = {"code": code, "message": message}
    if retry_after_seconds is not None:
        detail["retry_after_seconds"] = retry_after_seconds
    return detail


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    """Wrap an error detail in a JSON response, matching HTTPException's shape."""
    return JSONResponse(status_code=status_code, content={"detail": error_detail(code, message)})
