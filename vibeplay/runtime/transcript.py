from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .ids import new_id, now_ts_ms
from .narrator import narrate
from .session import (
    SUCCESS_PHASES,
    ChatMessage,
    CodeSnapshot,
    MessageRole,
    OperationKind,
    Session,
    StatusSummary,
)


@dataclass(frozen=True, slots=True)
class PendingReply:
    message_id: str
    request_id: str | None


class TranscriptBuilder:
    """
    Conversation transcript for one controller.

    A pending reply handle is opened when a session starts and released the
    first time the session leaves the active state into a terminal phase, so
    a given session can finalize at most one assistant message.
    """

    def __init__(self) -> None:
        self._messages: list[ChatMessage] = []
        self._pending: PendingReply | None = None

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def pending(self) -> PendingReply | None:
        return self._pending

    def add_user_message(self, text: str) -> ChatMessage:
        msg = ChatMessage(
            message_id=new_id("msg"),
            role=MessageRole.USER,
            text=text,
            created_at=now_ts_ms(),
        )
        self._messages.append(msg)
        return msg

    def open(self, session: Session) -> PendingReply:
        self._pending = PendingReply(message_id=new_id("msg"), request_id=session.request_id)
        return self._pending

    def discard(self) -> None:
        self._pending = None

    def observe(self, prev: Session, new: Session) -> ChatMessage | None:
        if self._pending is None:
            return None
        if not (prev.is_active and not new.is_active and new.is_terminal):
            return None
        msg = self._finalize(self._pending, new)
        self._pending = None
        self._messages.append(msg)
        return msg

    def _finalize(self, pending: PendingReply, session: Session) -> ChatMessage:
        succeeded = session.phase in SUCCESS_PHASES
        summary = None
        if succeeded:
            narration = narrate(session)
            summary = StatusSummary(phase=narration.phase, bullets=narration.bullets, is_completed=True)

        snapshot = None
        artifact = session.code_artifact
        if (
            succeeded
            and session.operation_kind is OperationKind.GENERATING
            and artifact is not None
            and not artifact.retain_until_replaced
            and not artifact.is_empty()
        ):
            snapshot = CodeSnapshot(content=artifact.content, code_kind=artifact.code_kind, game=artifact.game)

        suggestions: tuple[str, ...] = ()
        if succeeded and not session.suggestions_retained:
            suggestions = session.suggestions

        return ChatMessage(
            message_id=pending.message_id,
            role=MessageRole.ASSISTANT,
            text=session.narrative_text(),
            created_at=now_ts_ms(),
            status_summary=summary,
            code_snapshot=snapshot,
            suggestions=suggestions,
        )

    def clear(self) -> None:
        self._messages.clear()
        self._pending = None

    def export(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._messages]
