from __future__ import annotations

import json
import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config import ClientConfig
from ..ids import now_ts_ms
from ..protocol import AgentEvent, event_to_dict


def _replace_surrogates(text: str) -> str:
    out: list[str] = []
    changed = False
    for ch in text:
        o = ord(ch)
        if 0xD800 <= o <= 0xDFFF:
            out.append("\uFFFD")
            changed = True
        else:
            out.append(ch)
    return "".join(out) if changed else text


def _sanitize_json_value(value: Any) -> Any:
    if isinstance(value, str):
        return _replace_surrogates(value)
    if isinstance(value, list):
        return [_sanitize_json_value(v) for v in value]
    if isinstance(value, dict):
        out: dict[Any, Any] = {}
        for k, v in value.items():
            key = _replace_surrogates(k) if isinstance(k, str) else k
            out[key] = _sanitize_json_value(v)
        return out
    return value


def _safe_write_json(path: Path, obj: Any) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(
        json.dumps(_sanitize_json_value(obj), ensure_ascii=False, sort_keys=True, indent=2, default=str),
        encoding="utf-8",
        errors="backslashreplace",
    )
    tmp.replace(path)


@dataclass(slots=True)
class StreamTrace:
    """
    On-disk record of one streaming request, written under
    `<trace_dir>/<session_id>/<request_id>/`. Only created when tracing is enabled.
    """

    trace_dir: Path
    session_id: str
    request_id: str
    started_at_ms: int = field(default_factory=now_ts_ms)
    _meta: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def maybe_create(*, config: ClientConfig, session_id: str, request_id: str) -> "StreamTrace | None":
        if not config.trace_enabled or config.trace_dir is None:
            return None
        trace_dir = (config.trace_dir / session_id / request_id).resolve()
        trace_dir.mkdir(parents=True, exist_ok=True)
        trace = StreamTrace(trace_dir=trace_dir, session_id=session_id, request_id=request_id)
        trace.record_meta(status="started")
        return trace

    @property
    def meta_path(self) -> Path:
        return self.trace_dir / "meta.json"

    def record_meta(self, **patch: Any) -> None:
        self._meta.update(patch)
        payload = {
            "session_id": self.session_id,
            "request_id": self.request_id,
            "started_at_ms": self.started_at_ms,
            **self._meta,
        }
        _safe_write_json(self.meta_path, payload)

    def write_json(self, name: str, obj: Any) -> None:
        _safe_write_json(self.trace_dir / name, obj)

    def append_jsonl(self, name: str, obj: Any) -> None:
        path = self.trace_dir / name
        line = json.dumps(_sanitize_json_value(obj), ensure_ascii=False, default=str)
        with path.open("a", encoding="utf-8", errors="backslashreplace") as f:
            f.write(line)
            f.write("\n")

    def record_request(self, *, url: str, payload: dict[str, Any], timeout_s: float | None) -> None:
        self.record_meta(url=url, timeout_s=timeout_s)
        self.write_json("request.json", {"url": url, "timeout_s": timeout_s, "payload": payload})

    def record_frame(self, data: str) -> None:
        self.append_jsonl("frames.jsonl", {"ts_ms": now_ts_ms(), "data": data})

    def record_dropped(self, data: str, *, reason: str | None) -> None:
        self.append_jsonl("dropped.jsonl", {"ts_ms": now_ts_ms(), "reason": reason, "data": data})

    def record_event(self, event: AgentEvent) -> None:
        self.append_jsonl("events.jsonl", {"ts_ms": now_ts_ms(), "event": event_to_dict(event)})

    def record_completed(self, *, event_count: int, saw_done: bool) -> None:
        self.record_meta(status="completed", finished_at_ms=now_ts_ms(), event_count=event_count, saw_done=saw_done)

    def record_cancelled(self, *, reason: str | None = None) -> None:
        self.write_json("cancelled.json", {"reason": reason})
        self.record_meta(status="cancelled", finished_at_ms=now_ts_ms(), cancel_reason=reason)

    def record_error(self, err: BaseException, *, code: str | None = None) -> None:
        self.write_json(
            "error.json",
            {
                "type": type(err).__name__,
                "message": str(err),
                "code": code,
                "traceback": traceback.format_exception(type(err), err, err.__traceback__),
            },
        )
        self.record_meta(status="failed", finished_at_ms=now_ts_ms(), error_type=type(err).__name__, error_code=code)
