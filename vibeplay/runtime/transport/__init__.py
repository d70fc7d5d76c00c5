from __future__ import annotations

from .client import EventStreamClient, GenerateRequest
from .errors import CancellationToken, TransportError
from .frames import Frame, FrameKind, decode_line
from .httpx_errors import wrap_httpx_exception
from .trace import StreamTrace

__all__ = [
    "CancellationToken",
    "EventStreamClient",
    "Frame",
    "FrameKind",
    "GenerateRequest",
    "StreamTrace",
    "TransportError",
    "decode_line",
    "wrap_httpx_exception",
]
