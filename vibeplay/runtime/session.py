from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Union

from .protocol import GameCode


class OperationKind(StrEnum):
    NONE = "none"
    GENERATING = "generating"
    PUBLISHING = "publishing"


class GenerationPhase(StrEnum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    THINKING = "thinking"
    OUTLINING = "outlining"
    GENERATING = "generating"
    PREVIEWING = "previewing"
    COMPLETED = "completed"
    ERROR = "error"


class PublishPhase(StrEnum):
    IDLE = "idle"
    VALIDATING = "validating"
    PREPARING = "preparing"
    DEPLOYING = "deploying"
    PUBLISHED = "published"
    ERROR = "error"


Phase = Union[GenerationPhase, PublishPhase]

TERMINAL_PHASES = frozenset(
    {
        GenerationPhase.COMPLETED,
        GenerationPhase.ERROR,
        PublishPhase.PUBLISHED,
        PublishPhase.ERROR,
    }
)
SUCCESS_PHASES = frozenset({GenerationPhase.COMPLETED, PublishPhase.PUBLISHED})


class CodeKind(StrEnum):
    MARKUP = "markup"
    STYLE = "style"
    LOGIC = "logic"


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class CodeArtifact:
    content: str = ""
    code_kind: CodeKind = CodeKind.MARKUP
    # Authoritative bundle from the final `code` event, if one arrived.
    game: GameCode | None = None
    # Carried over from the previous session: the next code fragment replaces
    # the content instead of appending to it.
    retain_until_replaced: bool = False

    def is_empty(self) -> bool:
        return not self.content.strip() and (self.game is None or self.game.is_empty())


@dataclass(frozen=True, slots=True)
class PublishResult:
    live_url: str
    site_name: str
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"live_url": self.live_url, "site_name": self.site_name, "message": self.message}


@dataclass(frozen=True, slots=True)
class Session:
    operation_kind: OperationKind = OperationKind.NONE
    phase: Phase = GenerationPhase.IDLE
    is_active: bool = False
    narrative: tuple[str, ...] = ()
    code_artifact: CodeArtifact | None = None
    suggestions: tuple[str, ...] = ()
    # True while `suggestions` still holds the previous session's list.
    suggestions_retained: bool = False
    publish_result: PublishResult | None = None
    last_error: str | None = None
    tip: str | None = None
    request_id: str | None = None
    cancelled: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def narrative_text(self) -> str:
        return "\n\n".join(part.strip("\n") for part in self.narrative if part.strip()).strip()


@dataclass(frozen=True, slots=True)
class StatusSummary:
    phase: str
    bullets: tuple[str, ...]
    is_completed: bool

    def to_dict(self) -> dict[str, Any]:
        return {"phase": self.phase, "bullets": list(self.bullets), "is_completed": self.is_completed}

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "StatusSummary":
        return StatusSummary(
            phase=str(raw["phase"]),
            bullets=tuple(str(b) for b in raw.get("bullets") or ()),
            is_completed=bool(raw.get("is_completed")),
        )


@dataclass(frozen=True, slots=True)
class CodeSnapshot:
    content: str
    code_kind: CodeKind
    game: GameCode | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"content": self.content, "code_kind": self.code_kind.value}
        if self.game is not None:
            out["game"] = self.game.to_dict()
        return out

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "CodeSnapshot":
        game_raw = raw.get("game")
        return CodeSnapshot(
            content=str(raw.get("content") or ""),
            code_kind=CodeKind(str(raw["code_kind"])),
            game=GameCode.from_dict(game_raw) if isinstance(game_raw, dict) else None,
        )


@dataclass(frozen=True, slots=True)
class ChatMessage:
    message_id: str
    role: MessageRole
    text: str
    created_at: int
    status_summary: StatusSummary | None = None
    code_snapshot: CodeSnapshot | None = None
    suggestions: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "message_id": self.message_id,
            "role": self.role.value,
            "text": self.text,
            "created_at": self.created_at,
        }
        if self.status_summary is not None:
            out["status_summary"] = self.status_summary.to_dict()
        if self.code_snapshot is not None:
            out["code_snapshot"] = self.code_snapshot.to_dict()
        if self.suggestions:
            out["suggestions"] = list(self.suggestions)
        return out

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "ChatMessage":
        summary = raw.get("status_summary")
        snapshot = raw.get("code_snapshot")
        return ChatMessage(
            message_id=str(raw["message_id"]),
            role=MessageRole(str(raw["role"])),
            text=str(raw.get("text") or ""),
            created_at=int(raw["created_at"]),
            status_summary=StatusSummary.from_dict(summary) if isinstance(summary, dict) else None,
            code_snapshot=CodeSnapshot.from_dict(snapshot) if isinstance(snapshot, dict) else None,
            suggestions=tuple(str(s) for s in raw.get("suggestions") or ()),
        )
