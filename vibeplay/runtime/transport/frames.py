from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum

from ..protocol import AgentEvent, parse_event

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class FrameKind(StrEnum):
    EVENT = "event"
    DONE = "done"
    DROPPED = "dropped"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class Frame:
    kind: FrameKind
    data: str = ""
    event: AgentEvent | None = None
    reason: str | None = None


def decode_line(line: str) -> Frame:
    """
    Decode one line of an event-stream body.

    Only `data:` lines carry events; blank separators, comments and other
    field lines are ignored. A `data:` line that is not a JSON event object
    is dropped with a reason instead of raising.
    """

    line = line.rstrip("\r\n")
    if not line.startswith(DATA_PREFIX):
        return Frame(kind=FrameKind.IGNORED, data=line)
    data = line[len(DATA_PREFIX) :]
    if data.startswith(" "):
        data = data[1:]

    if data.strip() == DONE_SENTINEL:
        return Frame(kind=FrameKind.DONE, data=data)
    if not data.strip():
        return Frame(kind=FrameKind.IGNORED, data=data)

    try:
        raw = json.loads(data)
    except json.JSONDecodeError as e:
        return Frame(kind=FrameKind.DROPPED, data=data, reason=f"invalid JSON: {e.msg}")
    except RecursionError:
        return Frame(kind=FrameKind.DROPPED, data=data, reason="invalid JSON: nesting too deep")

    event = parse_event(raw)
    if event is None:
        return Frame(kind=FrameKind.DROPPED, data=data, reason="not an event object")
    return Frame(kind=FrameKind.EVENT, data=data, event=event)
