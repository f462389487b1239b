"""Global exception handling for the HTTP surface."""

from __future__ import annotations

from typing import Any, Mapping

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from slackfm.errors import AppError, ErrorCode, InternalServerError, to_response
from slackfm.logging import get_logger

_logger = get_logger(__name__)


def _extract_detail_message(detail: Any, default: str) -> str:
    if isinstance(detail, str) and detail.strip():
        return detail
    if isinstance(detail, Mapping):
        for key in ("message", "detail", "error"):
            candidate = detail.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate
    return default


def _code_for_status(status_code: int) -> tuple[ErrorCode, str]:
    if status_code == status.HTTP_404_NOT_FOUND:
        return ErrorCode.NOT_FOUND, "Resource not found."
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return ErrorCode.AUTH_REQUIRED, "Request signature is missing or invalid."
    if status_code in {424, 502, 503, 504}:
        return ErrorCode.DEPENDENCY_ERROR, "Upstream service is unavailable."
    if 400 <= status_code < 500:
        return ErrorCode.VALIDATION_ERROR, "Request could not be completed."
    return ErrorCode.INTERNAL_ERROR, "An unexpected error occurred."


async def _render_http_exception(
    request: Request,
    *,
    status_code: int,
    detail: Any,
    headers: Mapping[str, str] | None,
) -> JSONResponse:
    effective_status = status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
    code, default_message = _code_for_status(effective_status)
    return to_response(
        message=_extract_detail_message(detail, default_message),
        code=code,
        status_code=effective_status,
        request_path=request.url.path,
        method=request.method,
        headers=dict(headers) if headers else None,
    )


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields: list[dict[str, str]] = []
    for error in exc.errors():
        raw_loc = error.get("loc", [])
        components = list(raw_loc) if isinstance(raw_loc, (list, tuple)) else [raw_loc]
        if components and components[0] in {"body", "query", "path", "header", "cookie"}:
            components = components[1:]
        location = ".".join(str(component) for component in components)
        fields.append({"name": location or "?", "message": error.get("msg", "Invalid input.")})
    return to_response(
        message="Request validation failed.",
        code=ErrorCode.VALIDATION_ERROR,
        status_code=422,
        request_path=request.url.path,
        method=request.method,
        meta={"fields": fields} if fields else None,
    )


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return await _render_http_exception(
        request,
        status_code=exc.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=exc.detail,
        headers=exc.headers,
    )


async def _handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    return exc.as_response(request_path=request.url.path, method=request.method)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    _logger.exception("Unhandled application error", exc_info=exc)
    error = InternalServerError()
    return error.as_response(request_path=request.url.path, method=request.method)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the canonical exception handlers for the API."""

    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(HTTPException, _handle_http_exception)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(AppError, _handle_app_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)


__all__ = ["setup_exception_handlers"]
