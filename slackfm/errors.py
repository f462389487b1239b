"""Unified error handling utilities for the SlackFM HTTP surface."""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from enum import Enum
import logging
from typing import Any
from uuid import uuid4

from fastapi import status
from fastapi.responses import JSONResponse

from slackfm.logging import get_logger


class ErrorCode(str, Enum):
    """Application level error codes exposed via the HTTP API."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    NOT_FOUND = "NOT_FOUND"
    DEPENDENCY_ERROR = "DEPENDENCY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_logger = get_logger(__name__)


class AppError(Exception):
    """Base exception for SlackFM specific HTTP errors."""

    __slots__ = ("message", "code", "http_status", "meta", "headers")

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        meta: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.meta = meta
        self.headers = headers

    def as_response(self, *, request_path: str, method: str) -> JSONResponse:
        """Serialise the exception into the canonical error envelope."""

        return to_response(
            message=self.message,
            code=self.code,
            status_code=self.http_status,
            request_path=request_path,
            method=method,
            meta=self.meta,
            headers=self.headers,
        )


class ValidationAppError(AppError):
    """Error raised when a client submitted invalid input."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            http_status=status_code,
            meta=meta,
        )


class AuthenticationRequiredError(AppError):
    """Error raised when a request signature is missing or invalid."""

    def __init__(
        self,
        message: str = "Request signature is missing or invalid.",
        *,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.AUTH_REQUIRED,
            http_status=status.HTTP_401_UNAUTHORIZED,
            meta=meta,
        )


class DependencyError(AppError):
    """Error raised when upstream dependencies are unavailable."""

    def __init__(
        self,
        message: str = "Upstream service is unavailable.",
        *,
        status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.DEPENDENCY_ERROR,
            http_status=status_code,
            meta=meta,
        )


class InternalServerError(AppError):
    """Error raised when the application encountered an unexpected failure."""

    def __init__(self, message: str = "An unexpected error occurred.") -> None:
        super().__init__(
            message=message,
            code=ErrorCode.INTERNAL_ERROR,
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


def _log_level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code in {401, 502, 503, 504}:
        return logging.WARNING
    return logging.INFO


def to_response(
    *,
    message: str,
    code: ErrorCode,
    status_code: int,
    request_path: str,
    method: str,
    meta: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Create an error response with the standard envelope."""

    debug_id = uuid4().hex
    payload: MutableMapping[str, Any] = {
        "ok": False,
        "error": {"code": code.value, "message": message},
    }
    if meta:
        payload["error"]["meta"] = dict(meta)

    response = JSONResponse(status_code=status_code, content=payload)
    response.headers["X-Debug-Id"] = debug_id
    if headers:
        for name, value in headers.items():
            response.headers[name] = value

    _logger.log(
        _log_level_for_status(status_code),
        "HTTP request failed",
        extra={
            "event": "api.error",
            "code": code.value,
            "status": status_code,
            "path": request_path,
            "method": method,
            "debug_id": debug_id,
        },
    )
    return response


__all__ = [
    "AppError",
    "AuthenticationRequiredError",
    "DependencyError",
    "ErrorCode",
    "InternalServerError",
    "ValidationAppError",
    "to_response",
]
