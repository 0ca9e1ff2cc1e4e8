from __future__ import annotations


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status


def not_found(message: str, *, code: str = "NOT_FOUND") -> ApiError:
    return ApiError(
        code=code,
        message=message,
        error_class="validation",
        retryable=False,
        http_status=404,
    )


def invalid_argument(message: str, *, code: str = "INVALID_ARGUMENT") -> ApiError:
    return ApiError(
        code=code,
        message=message,
        error_class="validation",
        retryable=False,
        http_status=400,
    )


def forbidden(message: str) -> ApiError:
    return ApiError(
        code="FORBIDDEN",
        message=message,
        error_class="security_sensitive",
        retryable=False,
        http_status=403,
    )


def storage_timeout(message: str) -> ApiError:
    return ApiError(
        code="STORAGE_TIMEOUT",
        message=message,
        error_class="transient",
        retryable=True,
        http_status=503,
    )


def storage_failure(message: str) -> ApiError:
    return ApiError(
        code="STORAGE_FAILURE",
        message=message,
        error_class="transient",
        retryable=True,
        http_status=502,
    )
