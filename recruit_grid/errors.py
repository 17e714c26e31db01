from __future__ import annotations

from typing import Any


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status
        self.details = details


def invalid_argument(message: str, *, code: str = "REQ_VALIDATION_FAILED") -> ApiError:
    return ApiError(
        code=code,
        message=message,
        error_class="validation",
        retryable=False,
        http_status=400,
    )


def unauthenticated(message: str, *, code: str = "AUTH_UNAUTHORIZED") -> ApiError:
    return ApiError(
        code=code,
        message=message,
        error_class="security_sensitive",
        retryable=False,
        http_status=401,
    )


def forbidden(message: str, *, code: str = "AUTH_FORBIDDEN") -> ApiError:
    return ApiError(
        code=code,
        message=message,
        error_class="security_sensitive",
        retryable=False,
        http_status=403,
    )


def not_found(message: str, *, code: str) -> ApiError:
    return ApiError(
        code=code,
        message=message,
        error_class="not_found",
        retryable=False,
        http_status=404,
    )


def conflict(message: str, *, code: str, retryable: bool = False) -> ApiError:
    return ApiError(
        code=code,
        message=message,
        error_class="business_rule",
        retryable=retryable,
        http_status=409,
    )


def unavailable(
    message: str,
    *,
    code: str = "STORAGE_UNAVAILABLE",
    details: dict[str, Any] | None = None,
) -> ApiError:
    return ApiError(
        code=code,
        message=message,
        error_class="transient",
        retryable=True,
        http_status=503,
        details=details,
    )


def payload_too_large(message: str, *, code: str = "PAYLOAD_TOO_LARGE") -> ApiError:
    return ApiError(
        code=code,
        message=message,
        error_class="validation",
        retryable=False,
        http_status=413,
    )
