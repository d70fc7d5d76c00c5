from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable

from .ids import new_id, now_ts_ms


class UpdateKind(StrEnum):
    SESSION_STARTED = "session_started"
    START_REJECTED = "start_rejected"
    STATE_CHANGED = "state_changed"
    MESSAGE_FINALIZED = "message_finalized"
    SESSION_CANCELLED = "session_cancelled"
    SESSION_RESET = "session_reset"


@dataclass(frozen=True, slots=True)
class Update:
    kind: str
    payload: dict[str, Any]
    session_id: str
    update_id: str = field(default_factory=lambda: new_id("upd"))
    timestamp: int = field(default_factory=now_ts_ms)
    request_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "kind": self.kind,
            "payload": self.payload,
            "session_id": self.session_id,
            "update_id": self.update_id,
            "timestamp": self.timestamp,
        }
        if self.request_id is not None:
            out["request_id"] = self.request_id
        return out


UpdateHandler = Callable[[Update], None]
ErrorHandler = Callable[[Update, Exception], None]


@dataclass(frozen=True, slots=True)
class UpdateFilter:
    kinds: set[str] | None = None
    request_id: str | None = None

    def matches(self, update: Update) -> bool:
        if self.kinds is not None and update.kind not in self.kinds:
            return False
        if self.request_id is not None and update.request_id != self.request_id:
            return False
        return True


class UpdateBus:
    """Synchronous fan-out of controller updates to subscribers, in subscription order."""

    def __init__(self) -> None:
        self._next_sub_id = 1
        self._subs: dict[int, tuple[UpdateHandler, UpdateFilter]] = {}

    def subscribe(self, handler: UpdateHandler, filt: UpdateFilter | None = None) -> int:
        sub_id = self._next_sub_id
        self._next_sub_id += 1
        self._subs[sub_id] = (handler, filt or UpdateFilter())
        return sub_id

    def unsubscribe(self, subscription_id: int) -> None:
        self._subs.pop(subscription_id, None)

    def publish(self, update: Update, *, on_error: ErrorHandler | None = None) -> None:
        """
        Deliver `update` to every matching subscriber. Without `on_error` a
        failing subscriber propagates; with it, the failure is reported and
        delivery continues with the next subscriber.
        """

        for handler, filt in list(self._subs.values()):
            if not filt.matches(update):
                continue
            if on_error is None:
                handler(update)
                continue
            try:
                handler(update)
            except Exception as e:
                on_error(update, e)
