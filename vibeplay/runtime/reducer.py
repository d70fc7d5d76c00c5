from __future__ import annotations

import re
from dataclasses import replace

from .protocol import (
    GENERATION_EVENT_KINDS,
    GENERATION_STATUSES,
    PUBLISH_EVENT_KINDS,
    PUBLISH_STATUSES,
    AgentEvent,
    CodeChunkEvent,
    CodeEvent,
    CommandEvent,
    ErrorEvent,
    ExplanationEvent,
    FeaturesEvent,
    PublishErrorEvent,
    PublishMessageEvent,
    PublishStatusEvent,
    PublishSuccessEvent,
    StatusEvent,
    SuggestionsEvent,
)
from .session import (
    CodeArtifact,
    CodeKind,
    GenerationPhase,
    OperationKind,
    Phase,
    PublishPhase,
    PublishResult,
    Session,
)

FEATURES_MARKER = "🎮 Features:"
ERROR_PREFIX = "❌ Error: "

FALLBACK_SUGGESTIONS: tuple[str, ...] = (
    "Add sound effects",
    "Change colors to neon theme",
    "Increase difficulty",
    "Add particle effects",
    "Create power-ups",
    "Add multiplayer mode",
)

# Checked in order; the first group with a hit wins. Keyword sniffing is an
# approximation: a logic fragment mentioning `color:` in a string still
# classifies as logic, a stylesheet containing `function` as logic too.
LOGIC_TOKENS: tuple[str, ...] = ("function", "const ", "addEventListener")
STYLE_TOKENS: tuple[str, ...] = ("color:", "background:", "font-")

_BULLET_RE = re.compile(r"^[-*]\s+(.+)")
_NUMBERED_RE = re.compile(r"^\d+\.\s+(.+)")
_COMMAND_TIP_RE = re.compile(r"<(\w+)>([^<]+)<")

# Folded even when the session belongs to the other operation family.
_CROSS_FAMILY_EVENTS = (PublishErrorEvent, PublishMessageEvent)

_GENERATION_ORDER: tuple[GenerationPhase, ...] = (
    GenerationPhase.IDLE,
    GenerationPhase.ANALYZING,
    GenerationPhase.THINKING,
    GenerationPhase.OUTLINING,
    GenerationPhase.GENERATING,
    GenerationPhase.PREVIEWING,
    GenerationPhase.COMPLETED,
)


def classify_code(content: str) -> CodeKind:
    if any(tok in content for tok in LOGIC_TOKENS):
        return CodeKind.LOGIC
    if any(tok in content for tok in STYLE_TOKENS):
        return CodeKind.STYLE
    return CodeKind.MARKUP


def parse_suggestions(text: str) -> tuple[str, ...]:
    out: list[str] = []
    for line in text.splitlines():
        s = line.strip()
        m = _BULLET_RE.match(s) or _NUMBERED_RE.match(s)
        if m is None:
            continue
        content = m.group(1).strip()
        if content:
            out.append(content)
    return tuple(out) if out else FALLBACK_SUGGESTIONS


def extract_command_tip(text: str) -> str | None:
    m = _COMMAND_TIP_RE.search(text)
    if m is None:
        return None
    tip = m.group(2).strip()
    return tip or None


def begin_session(prev: Session, *, request_id: str | None = None) -> Session:
    """
    Fresh active session that keeps the previous artifact and suggestions on
    display until this session's first code fragment / suggestions replace them.
    """

    artifact = prev.code_artifact
    if artifact is not None:
        artifact = replace(artifact, retain_until_replaced=True)
    return Session(
        operation_kind=OperationKind.NONE,
        phase=GenerationPhase.ANALYZING,
        is_active=True,
        narrative=(),
        code_artifact=artifact,
        suggestions=prev.suggestions,
        suggestions_retained=bool(prev.suggestions),
        publish_result=prev.publish_result,
        last_error=None,
        tip=None,
        request_id=request_id,
    )


def cancel_session(session: Session) -> Session:
    idle: Phase = PublishPhase.IDLE if session.operation_kind is OperationKind.PUBLISHING else GenerationPhase.IDLE
    return replace(
        session,
        is_active=False,
        phase=idle,
        narrative=(),
        code_artifact=None,
        suggestions=(),
        suggestions_retained=False,
        tip=None,
        cancelled=True,
    )


def _event_family(event: AgentEvent) -> OperationKind | None:
    kind = getattr(event, "kind", None)
    if kind in PUBLISH_EVENT_KINDS:
        return OperationKind.PUBLISHING
    if kind in GENERATION_EVENT_KINDS:
        return OperationKind.GENERATING
    return None


def _claim(session: Session, family: OperationKind | None) -> Session | None:
    # First event that implies an operation wins; later claims are no-ops.
    if family is None or session.operation_kind is family:
        return session
    if session.operation_kind is not OperationKind.NONE:
        return None
    if family is OperationKind.PUBLISHING:
        return replace(session, operation_kind=family, phase=PublishPhase.VALIDATING)
    return replace(session, operation_kind=family)


def _advance(session: Session, target: GenerationPhase) -> Session:
    current = session.phase
    if current in _GENERATION_ORDER and _GENERATION_ORDER.index(current) >= _GENERATION_ORDER.index(target):
        return session
    return replace(session, phase=target)


def _append(session: Session, fragment: str) -> Session:
    if not fragment.strip():
        return session
    return replace(session, narrative=session.narrative + (fragment,))


def _accepts(session: Session, event: AgentEvent) -> bool:
    if session.is_active:
        return True
    # After completion only the suggestion cards still refresh.
    return (
        isinstance(event, SuggestionsEvent)
        and not session.cancelled
        and session.operation_kind is not OperationKind.PUBLISHING
        and session.phase == GenerationPhase.COMPLETED
    )


def _fail(session: Session, message: str) -> Session:
    phase: Phase = (
        PublishPhase.ERROR if session.operation_kind is OperationKind.PUBLISHING else GenerationPhase.ERROR
    )
    session = replace(session, last_error=message, is_active=False, phase=phase)
    return replace(session, narrative=session.narrative + (f"{ERROR_PREFIX}{message}",))


def reduce(session: Session, event: AgentEvent) -> Session:
    """
    Fold one event into the session. Pure and total: unknown categories and
    events for an inactive session return `session` unchanged. Once the
    operation kind is set, the other family's progress events are no-ops but
    its messages and errors still fold.
    """

    if not _accepts(session, event):
        return session

    if isinstance(event, SuggestionsEvent) and not session.is_active:
        return replace(session, suggestions=parse_suggestions(event.text), suggestions_retained=False)

    claimed = _claim(session, _event_family(event))
    if claimed is None:
        if not isinstance(event, _CROSS_FAMILY_EVENTS):
            return session
        claimed = session
    session = claimed

    if isinstance(event, StatusEvent):
        if event.status not in GENERATION_STATUSES:
            return session
        return replace(session, phase=GenerationPhase(event.status))

    if isinstance(event, ExplanationEvent):
        return _append(_advance(session, GenerationPhase.OUTLINING), event.text)

    if isinstance(event, FeaturesEvent):
        if not event.text.strip():
            return session
        return _append(session, f"{FEATURES_MARKER}\n{event.text}")

    if isinstance(event, CommandEvent):
        tip = extract_command_tip(event.text)
        if tip is not None:
            session = replace(session, tip=tip)
        return _append(session, event.text)

    if isinstance(event, PublishMessageEvent):
        return _append(session, event.text)

    if isinstance(event, CodeChunkEvent):
        if not event.text:
            return session
        artifact = session.code_artifact
        if artifact is None or artifact.retain_until_replaced:
            content = event.text
        else:
            content = artifact.content + event.text
        session = replace(session, code_artifact=CodeArtifact(content=content, code_kind=classify_code(content)))
        return _advance(session, GenerationPhase.GENERATING)

    if isinstance(event, SuggestionsEvent):
        session = replace(session, suggestions=parse_suggestions(event.text), suggestions_retained=False)
        return _advance(session, GenerationPhase.COMPLETED)

    if isinstance(event, CodeEvent):
        artifact = session.code_artifact
        if artifact is not None and not artifact.retain_until_replaced and artifact.content.strip():
            content = artifact.content
        else:
            content = event.code.to_document()
        return replace(
            session,
            code_artifact=CodeArtifact(content=content, code_kind=classify_code(content), game=event.code),
            is_active=False,
            phase=GenerationPhase.COMPLETED,
        )

    if isinstance(event, PublishStatusEvent):
        if event.status not in PUBLISH_STATUSES:
            return session
        return replace(session, phase=PublishPhase(event.status))

    if isinstance(event, PublishSuccessEvent):
        return replace(
            session,
            publish_result=PublishResult(live_url=event.live_url, site_name=event.site_name, message=event.message),
            is_active=False,
            phase=PublishPhase.PUBLISHED,
        )

    if isinstance(event, (ErrorEvent, PublishErrorEvent)):
        return _fail(session, event.message)

    return session
