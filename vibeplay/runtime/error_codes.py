from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    """
    Stable, cross-module error codes used in events and exceptions.

    Transport failures and agent-reported failures share this vocabulary so a
    session's `last_error` can be rendered the same way regardless of origin.
    """

    # Transport
    TIMEOUT = "timeout"
    AUTH = "auth"
    PERMISSION = "permission"
    RATE_LIMIT = "rate_limit"
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNPROCESSABLE = "unprocessable"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"

    # Stream / session
    STREAM_INCOMPLETE = "stream_incomplete"
    AGENT_ERROR = "agent_error"
