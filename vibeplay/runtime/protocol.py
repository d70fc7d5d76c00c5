from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar, Union

from .error_codes import ErrorCode


class EventKind(StrEnum):
    STATUS = "status"
    EXPLANATION = "explanation"
    FEATURES = "features"
    SUGGESTIONS = "suggestions"
    COMMAND = "command"
    CODE_CHUNK = "code_chunk"
    CODE = "code"
    ERROR = "error"

    PUBLISH_STATUS = "publish_status"
    PUBLISH_SUCCESS = "publish_success"
    PUBLISH_ERROR = "publish_error"
    PUBLISH_MESSAGE = "publish_message"


GENERATION_STATUSES = frozenset({"thinking", "generating"})
PUBLISH_STATUSES = frozenset({"validating", "preparing", "deploying"})


@dataclass(frozen=True, slots=True)
class GameCode:
    html: str = ""
    css: str = ""
    js: str = ""

    def is_empty(self) -> bool:
        return not (self.html.strip() or self.css.strip() or self.js.strip())

    def to_document(self) -> str:
        parts: list[str] = []
        if self.html.strip():
            parts.append(self.html)
        if self.css.strip():
            parts.append(f"<style>\n{self.css}\n</style>")
        if self.js.strip():
            parts.append(f"<script>\n{self.js}\n</script>")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, str]:
        return {"html": self.html, "css": self.css, "js": self.js}

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "GameCode":
        return GameCode(
            html=_as_text(raw.get("html")),
            css=_as_text(raw.get("css")),
            js=_as_text(raw.get("js")),
        )


@dataclass(frozen=True, slots=True)
class StatusEvent:
    status: str
    kind: ClassVar[EventKind] = EventKind.STATUS


@dataclass(frozen=True, slots=True)
class ExplanationEvent:
    text: str
    kind: ClassVar[EventKind] = EventKind.EXPLANATION


@dataclass(frozen=True, slots=True)
class FeaturesEvent:
    text: str
    kind: ClassVar[EventKind] = EventKind.FEATURES


@dataclass(frozen=True, slots=True)
class SuggestionsEvent:
    text: str
    kind: ClassVar[EventKind] = EventKind.SUGGESTIONS


@dataclass(frozen=True, slots=True)
class CommandEvent:
    text: str
    kind: ClassVar[EventKind] = EventKind.COMMAND


@dataclass(frozen=True, slots=True)
class CodeChunkEvent:
    text: str
    kind: ClassVar[EventKind] = EventKind.CODE_CHUNK


@dataclass(frozen=True, slots=True)
class CodeEvent:
    code: GameCode
    kind: ClassVar[EventKind] = EventKind.CODE


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str
    # agent_error for errors reported by the agent, a transport code otherwise.
    code: ErrorCode | None = None
    kind: ClassVar[EventKind] = EventKind.ERROR


@dataclass(frozen=True, slots=True)
class PublishStatusEvent:
    status: str
    kind: ClassVar[EventKind] = EventKind.PUBLISH_STATUS


@dataclass(frozen=True, slots=True)
class PublishSuccessEvent:
    live_url: str
    site_name: str
    message: str = ""
    kind: ClassVar[EventKind] = EventKind.PUBLISH_SUCCESS


@dataclass(frozen=True, slots=True)
class PublishErrorEvent:
    message: str
    kind: ClassVar[EventKind] = EventKind.PUBLISH_ERROR


@dataclass(frozen=True, slots=True)
class PublishMessageEvent:
    text: str
    kind: ClassVar[EventKind] = EventKind.PUBLISH_MESSAGE


@dataclass(frozen=True, slots=True)
class UnknownEvent:
    """A frame that parsed as JSON but matches no known category or payload shape."""

    type_name: str
    payload: Any = None
    kind: ClassVar[EventKind | None] = None


AgentEvent = Union[
    StatusEvent,
    ExplanationEvent,
    FeaturesEvent,
    SuggestionsEvent,
    CommandEvent,
    CodeChunkEvent,
    CodeEvent,
    ErrorEvent,
    PublishStatusEvent,
    PublishSuccessEvent,
    PublishErrorEvent,
    PublishMessageEvent,
    UnknownEvent,
]

PUBLISH_EVENT_KINDS = frozenset(
    {
        EventKind.PUBLISH_STATUS,
        EventKind.PUBLISH_SUCCESS,
        EventKind.PUBLISH_ERROR,
        EventKind.PUBLISH_MESSAGE,
    }
)
GENERATION_EVENT_KINDS = frozenset(
    {
        EventKind.STATUS,
        EventKind.EXPLANATION,
        EventKind.FEATURES,
        EventKind.CODE_CHUNK,
        EventKind.CODE,
    }
)

_TEXT_EVENTS: dict[str, type] = {
    EventKind.EXPLANATION.value: ExplanationEvent,
    EventKind.FEATURES.value: FeaturesEvent,
    EventKind.SUGGESTIONS.value: SuggestionsEvent,
    EventKind.COMMAND.value: CommandEvent,
    EventKind.CODE_CHUNK.value: CodeChunkEvent,
    EventKind.PUBLISH_MESSAGE.value: PublishMessageEvent,
}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def parse_event(raw: Any) -> AgentEvent | None:
    """
    Structural parse of one decoded frame `{"type": ..., "payload": ...}`.

    Returns None when the frame is not an event object at all (the caller
    treats that as malformed). Objects with an unknown `type` or a payload of
    the wrong shape become `UnknownEvent`, which the reducer ignores.
    """

    if not isinstance(raw, dict):
        return None
    type_name = raw.get("type")
    if not isinstance(type_name, str) or not type_name:
        return None
    payload = raw.get("payload")

    text_cls = _TEXT_EVENTS.get(type_name)
    if text_cls is not None:
        if not isinstance(payload, str):
            return UnknownEvent(type_name=type_name, payload=payload)
        return text_cls(payload)

    if type_name == EventKind.STATUS.value:
        if payload not in GENERATION_STATUSES:
            return UnknownEvent(type_name=type_name, payload=payload)
        return StatusEvent(status=payload)

    if type_name == EventKind.PUBLISH_STATUS.value:
        if payload not in PUBLISH_STATUSES:
            return UnknownEvent(type_name=type_name, payload=payload)
        return PublishStatusEvent(status=payload)

    if type_name == EventKind.CODE.value:
        if not isinstance(payload, dict):
            return UnknownEvent(type_name=type_name, payload=payload)
        return CodeEvent(code=GameCode.from_dict(payload))

    if type_name == EventKind.PUBLISH_SUCCESS.value:
        if not isinstance(payload, dict):
            return UnknownEvent(type_name=type_name, payload=payload)
        return PublishSuccessEvent(
            live_url=_as_text(payload.get("live_url")),
            site_name=_as_text(payload.get("site_name")),
            message=_as_text(payload.get("message")),
        )

    if type_name == EventKind.ERROR.value:
        return ErrorEvent(message=_as_text(payload) or "Unknown error", code=ErrorCode.AGENT_ERROR)

    if type_name == EventKind.PUBLISH_ERROR.value:
        return PublishErrorEvent(message=_as_text(payload) or "Unknown error")

    return UnknownEvent(type_name=type_name, payload=payload)


def event_to_dict(event: AgentEvent) -> dict[str, Any]:
    if isinstance(event, UnknownEvent):
        return {"type": event.type_name, "payload": event.payload}
    if isinstance(event, CodeEvent):
        payload: Any = event.code.to_dict()
    elif isinstance(event, PublishSuccessEvent):
        payload = {"live_url": event.live_url, "site_name": event.site_name, "message": event.message}
    elif isinstance(event, ErrorEvent):
        payload = event.message
    elif isinstance(event, (StatusEvent, PublishStatusEvent)):
        payload = event.status
    elif isinstance(event, PublishErrorEvent):
        payload = event.message
    else:
        payload = event.text
    out: dict[str, Any] = {"type": event.kind.value, "payload": payload}
    if isinstance(event, ErrorEvent) and event.code is not None:
        out["code"] = event.code.value
    return out
