from __future__ import annotations

import httpx

from ..error_codes import ErrorCode
from .errors import TransportError, is_retryable_error_code


def classify_status_code(status_code: int) -> ErrorCode:
    if status_code == 400:
        return ErrorCode.BAD_REQUEST
    if status_code == 401:
        return ErrorCode.AUTH
    if status_code == 403:
        return ErrorCode.PERMISSION
    if status_code == 404:
        return ErrorCode.NOT_FOUND
    if status_code == 409:
        return ErrorCode.CONFLICT
    if status_code == 422:
        return ErrorCode.UNPROCESSABLE
    if status_code == 429:
        return ErrorCode.RATE_LIMIT
    if 500 <= status_code <= 599:
        return ErrorCode.SERVER_ERROR
    return ErrorCode.UNKNOWN


def wrap_httpx_exception(exc: BaseException, *, operation: str) -> TransportError:
    status_code = None
    if isinstance(exc, httpx.TimeoutException):
        code = ErrorCode.TIMEOUT
    elif isinstance(exc, httpx.NetworkError):
        code = ErrorCode.NETWORK_ERROR
    elif isinstance(exc, httpx.HTTPStatusError):
        status_code = int(exc.response.status_code)
        code = classify_status_code(status_code)
    elif isinstance(exc, (httpx.RemoteProtocolError, httpx.StreamError)):
        code = ErrorCode.NETWORK_ERROR
    else:
        code = ErrorCode.UNKNOWN

    return TransportError(
        str(exc) or exc.__class__.__name__,
        code=code,
        status_code=status_code,
        retryable=is_retryable_error_code(code),
        details={"operation": operation},
        cause=exc,
    )
