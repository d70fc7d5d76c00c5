from __future__ import annotations

from dataclasses import dataclass

from .session import CodeKind, GenerationPhase, OperationKind, Phase, PublishPhase, Session

DONE = "✓"
IN_PROGRESS = "⏳"

_Step = tuple[Phase, str, str]

# (completed-step line, in-progress line) per non-terminal phase, in pipeline order.
_GENERATION_STEPS: tuple[tuple[GenerationPhase, str, str], ...] = (
    (GenerationPhase.ANALYZING, "Request analyzed", "Analyzing your request"),
    (GenerationPhase.THINKING, "Game concept designed", "Designing the game concept"),
    (GenerationPhase.OUTLINING, "Implementation designed", "Designing implementation"),
    (GenerationPhase.GENERATING, "Game code written", "Writing game code"),
    (GenerationPhase.PREVIEWING, "Preview ready", "Preparing the preview"),
)
_PUBLISH_STEPS: tuple[tuple[PublishPhase, str, str], ...] = (
    (PublishPhase.VALIDATING, "Game validated", "Checking that a game has been created"),
    (PublishPhase.PREPARING, "Deployment prepared", "Preparing the game for deployment"),
    (PublishPhase.DEPLOYING, "Deployed to hosting", "Deploying to hosting"),
)

_TIPS: dict[str, str] = {
    GenerationPhase.ANALYZING.value: "Analyzing your request...",
    GenerationPhase.THINKING.value: "Planning the best approach for your game...",
    GenerationPhase.OUTLINING.value: "Designing your game concept...",
    GenerationPhase.GENERATING.value: "Writing your game code...",
    GenerationPhase.PREVIEWING.value: "Preparing the game for testing...",
    GenerationPhase.COMPLETED.value: "Your game is ready! Try the suggestions below.",
}
_PUBLISH_TIPS: dict[str, str] = {
    PublishPhase.VALIDATING.value: "Checking if a game has been created...",
    PublishPhase.PREPARING.value: "Game found! Preparing for deployment...",
    PublishPhase.DEPLOYING.value: "Deploying to hosting...",
    PublishPhase.PUBLISHED.value: "Your game is now live!",
}

BUILD_STRUCTURE = "🔧 Setting up HTML structure"
BUILD_STYLING = "🎨 Adding CSS styling and animations"
BUILD_LOGIC = "⚡ Implementing game logic"
BUILD_HANDLERS = "🎮 Setting up event handlers"

BUILD_COMPLETED: tuple[str, ...] = (
    "✅ HTML structure created",
    "✅ CSS styling applied",
    "✅ JavaScript logic implemented",
    "✅ Game mechanics configured",
    "✅ Interactive features added",
    "🎮 Game ready to play!",
)

_STYLING_HINTS = ("style", "css", "color:")
_LOGIC_HINTS = ("function", "const ", "let ")
_HANDLER_HINTS = ("addEventListener", "keydown", "click")


@dataclass(frozen=True, slots=True)
class Narration:
    phase: str
    bullets: tuple[str, ...]
    tip: str | None = None


def _pipeline(steps: tuple[_Step, ...], phase: Phase) -> tuple[str, ...]:
    done: list[str] = []
    for step_phase, done_line, current_line in steps:
        if step_phase == phase:
            return tuple(done) + (f"{IN_PROGRESS} {current_line}",)
        done.append(f"{DONE} {done_line}")
    return ()


def _all_done(steps: tuple[_Step, ...]) -> tuple[str, ...]:
    return tuple(f"{DONE} {done_line}" for _, done_line, _ in steps)


def narrate(session: Session) -> Narration:
    """
    Progress lines for the current phase: the completed steps, then the step
    in progress. Terminal success phases list every step as done; `idle` and
    `error` narrate nothing. Depends on `session` only.
    """

    phase = session.phase
    if session.operation_kind is OperationKind.PUBLISHING:
        if phase == PublishPhase.PUBLISHED:
            bullets = _all_done(_PUBLISH_STEPS)
        else:
            bullets = _pipeline(_PUBLISH_STEPS, phase)
        tips = _PUBLISH_TIPS
    else:
        if phase == GenerationPhase.COMPLETED:
            bullets = _all_done(_GENERATION_STEPS)
        else:
            bullets = _pipeline(_GENERATION_STEPS, phase)
        tips = _TIPS

    if phase in (GenerationPhase.IDLE, GenerationPhase.ERROR):
        return Narration(phase=phase.value, bullets=(), tip=None)
    tip = session.tip if session.tip else tips.get(phase.value)
    return Narration(phase=phase.value, bullets=bullets, tip=tip)


def build_steps(session: Session) -> tuple[str, ...]:
    """Code-building checklist for the artifact currently on display."""

    if session.operation_kind is OperationKind.PUBLISHING:
        return ()
    artifact = session.code_artifact
    if artifact is None or artifact.retain_until_replaced:
        return ()
    if phase_is_completed(session) and artifact.game is not None:
        return BUILD_COMPLETED

    content = artifact.content
    steps = [BUILD_STRUCTURE]
    if artifact.code_kind is CodeKind.STYLE or any(h in content for h in _STYLING_HINTS):
        steps.append(BUILD_STYLING)
    if artifact.code_kind is CodeKind.LOGIC or any(h in content for h in _LOGIC_HINTS):
        steps.append(BUILD_LOGIC)
    if any(h in content for h in _HANDLER_HINTS):
        steps.append(BUILD_HANDLERS)
    return tuple(steps)


def phase_is_completed(session: Session) -> bool:
    return session.phase in (GenerationPhase.COMPLETED, PublishPhase.PUBLISHED)
