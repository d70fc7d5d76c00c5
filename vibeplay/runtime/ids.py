from __future__ import annotations

import time
import uuid


def new_id(prefix: str) -> str:
    ts = time.time_ns()
    rand = uuid.uuid4().hex
    return f"{prefix}_{ts:016x}_{rand}"


def new_session_id() -> str:
    # One per conversation; stable across every request in it.
    return f"session_{now_ts_ms()}_{uuid.uuid4().hex[:9]}"


def now_ts_ms() -> int:
    return int(time.time() * 1000)
