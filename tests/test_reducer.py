from dataclasses import replace

from vibeplay.runtime.protocol import (
    CodeChunkEvent,
    CodeEvent,
    CommandEvent,
    ErrorEvent,
    ExplanationEvent,
    FeaturesEvent,
    GameCode,
    PublishErrorEvent,
    PublishMessageEvent,
    PublishStatusEvent,
    PublishSuccessEvent,
    StatusEvent,
    SuggestionsEvent,
    UnknownEvent,
)
from vibeplay.runtime.reducer import (
    FALLBACK_SUGGESTIONS,
    FEATURES_MARKER,
    begin_session,
    cancel_session,
    classify_code,
    parse_suggestions,
    reduce,
)
from vibeplay.runtime.session import (
    CodeKind,
    GenerationPhase,
    OperationKind,
    PublishPhase,
    PublishResult,
    Session,
)

ALL_EVENTS = (
    StatusEvent(status="thinking"),
    ExplanationEvent("text"),
    FeaturesEvent("- jump"),
    SuggestionsEvent("- more"),
    CommandEvent("<run>now<"),
    CodeChunkEvent("<div>"),
    CodeEvent(code=GameCode(html="<div/>")),
    ErrorEvent(message="boom"),
    PublishStatusEvent(status="deploying"),
    PublishSuccessEvent(live_url="https://x.test", site_name="x"),
    PublishErrorEvent(message="nope"),
    PublishMessageEvent("hello"),
    UnknownEvent(type_name="heartbeat"),
)


def _active() -> Session:
    return begin_session(Session(), request_id="req_1")


def _fold(session: Session, *events) -> Session:
    for event in events:
        session = reduce(session, event)
    return session


def test_begin_session_starts_analyzing():
    s = _active()
    assert s.is_active
    assert s.phase == GenerationPhase.ANALYZING
    assert s.operation_kind is OperationKind.NONE
    assert s.request_id == "req_1"


def test_reduce_is_total_on_an_idle_session():
    idle = Session()
    for event in ALL_EVENTS:
        assert reduce(idle, event) is idle


def test_unknown_event_is_ignored():
    s = _active()
    assert reduce(s, UnknownEvent(type_name="heartbeat", payload={"n": 1})) is s


def test_status_sets_generation_phase():
    s = _fold(_active(), StatusEvent(status="thinking"))
    assert s.operation_kind is OperationKind.GENERATING
    assert s.phase == GenerationPhase.THINKING
    assert s.is_active


def test_explanation_appends_and_advances_to_outlining():
    s = _fold(_active(), StatusEvent(status="thinking"), ExplanationEvent("A maze game."))
    assert s.phase == GenerationPhase.OUTLINING
    assert s.narrative == ("A maze game.",)

    later = _fold(s, CodeChunkEvent("<div>"), ExplanationEvent("More."))
    assert later.phase == GenerationPhase.GENERATING


def test_features_are_marked():
    s = _fold(_active(), FeaturesEvent("- Lives\n- Score"))
    assert s.narrative == (f"{FEATURES_MARKER}\n- Lives\n- Score",)
    assert s.operation_kind is OperationKind.GENERATING


def test_command_text_sets_tip():
    s = _fold(_active(), CommandEvent("Controls: <keys>Use arrows to steer<"))
    assert s.tip == "Use arrows to steer"
    assert s.narrative == ("Controls: <keys>Use arrows to steer<",)


def test_code_chunks_accumulate_in_order():
    chunks = ["<div id='board'>", "</div>", "<style>.x { color: red; }</style>"]
    s = _fold(_active(), *(CodeChunkEvent(c) for c in chunks))
    assert s.code_artifact is not None
    assert s.code_artifact.content == "".join(chunks)
    assert s.code_artifact.code_kind is CodeKind.STYLE
    assert s.phase == GenerationPhase.GENERATING


def test_empty_code_chunk_is_ignored():
    s = _fold(_active(), CodeChunkEvent("<div>"))
    assert reduce(s, CodeChunkEvent("")) is s


def test_classification_precedence():
    assert classify_code("<div></div>") is CodeKind.MARKUP
    assert classify_code("body { background: black; }") is CodeKind.STYLE
    assert classify_code("const x = 1;") is CodeKind.LOGIC
    # Logic wins even when style tokens are present.
    assert classify_code("el.style.cssText = 'color: red'; function f() {}") is CodeKind.LOGIC


def test_parse_suggestions_bullets_and_numbers():
    assert parse_suggestions("- Add sound\n* Add colors\nnot-a-bullet") == ("Add sound", "Add colors")
    assert parse_suggestions("Ideas:\n1. Faster ball\n  2. Two players") == ("Faster ball", "Two players")


def test_parse_suggestions_fallback():
    assert parse_suggestions("nothing to list here") == FALLBACK_SUGGESTIONS
    assert parse_suggestions("") == FALLBACK_SUGGESTIONS
    assert parse_suggestions("-   \n*") == FALLBACK_SUGGESTIONS


def test_suggestions_replace_and_complete():
    s = _fold(_active(), CodeChunkEvent("<div>"), SuggestionsEvent("- Add sound\n* Add colors\nnot-a-bullet"))
    assert s.suggestions == ("Add sound", "Add colors")
    assert s.phase == GenerationPhase.COMPLETED
    assert s.is_active

    s = reduce(s, SuggestionsEvent("- Only one"))
    assert s.suggestions == ("Only one",)


def test_code_event_completes_generation():
    s = _fold(
        _active(),
        StatusEvent(status="generating"),
        CodeChunkEvent("function move(){}"),
        CodeEvent(code=GameCode(html="<div/>", css="", js="function move(){}")),
    )
    assert not s.is_active
    assert s.phase == GenerationPhase.COMPLETED
    assert s.code_artifact is not None
    assert s.code_artifact.code_kind is CodeKind.LOGIC
    assert s.code_artifact.content == "function move(){}"
    assert s.code_artifact.game == GameCode(html="<div/>", css="", js="function move(){}")


def test_code_event_without_chunks_uses_bundle():
    game = GameCode(html="<canvas></canvas>", css="canvas { background: black; }")
    s = _fold(_active(), CodeEvent(code=game))
    assert s.code_artifact is not None
    assert s.code_artifact.content == game.to_document()
    assert s.code_artifact.code_kind is CodeKind.STYLE


def test_publish_flow():
    s = _fold(
        _active(),
        PublishStatusEvent(status="validating"),
        PublishStatusEvent(status="deploying"),
    )
    assert s.operation_kind is OperationKind.PUBLISHING
    assert s.phase == PublishPhase.DEPLOYING
    assert s.is_active

    s = reduce(s, PublishSuccessEvent(live_url="https://x.test", site_name="x"))
    assert s.publish_result == PublishResult(live_url="https://x.test", site_name="x")
    assert s.phase == PublishPhase.PUBLISHED
    assert not s.is_active


def test_publish_message_claims_publishing():
    s = _fold(_active(), PublishMessageEvent("Deploying your game"))
    assert s.operation_kind is OperationKind.PUBLISHING
    assert s.phase == PublishPhase.VALIDATING
    assert s.narrative == ("Deploying your game",)


def test_other_family_progress_is_ignored_once_claimed():
    generating = _fold(_active(), StatusEvent(status="thinking"))
    for event in (
        PublishStatusEvent(status="deploying"),
        PublishSuccessEvent(live_url="https://x.test", site_name="x"),
    ):
        assert reduce(generating, event) is generating

    publishing = _fold(_active(), PublishStatusEvent(status="preparing"))
    for event in (ExplanationEvent("x"), CodeChunkEvent("<div>"), StatusEvent(status="generating")):
        assert reduce(publishing, event) is publishing


def test_publish_message_and_error_fold_into_generation():
    s = _fold(
        _active(),
        StatusEvent(status="thinking"),
        PublishMessageEvent("note from agent"),
    )
    assert s.operation_kind is OperationKind.GENERATING
    assert s.narrative == ("note from agent",)
    assert s.is_active

    s = reduce(s, PublishErrorEvent(message="deploy quota exceeded"))
    assert s.operation_kind is OperationKind.GENERATING
    assert not s.is_active
    assert s.phase == GenerationPhase.ERROR
    assert s.last_error == "deploy quota exceeded"
    assert s.narrative[-1] == "❌ Error: deploy quota exceeded"


def test_generation_error_folds_into_publish():
    s = _fold(_active(), PublishStatusEvent(status="deploying"), ErrorEvent(message="agent crashed"))
    assert s.operation_kind is OperationKind.PUBLISHING
    assert s.phase == PublishPhase.ERROR
    assert s.last_error == "agent crashed"


def test_error_finishes_session():
    s = _fold(_active(), ExplanationEvent("Working on it."), ErrorEvent(message="model overloaded"))
    assert not s.is_active
    assert s.phase == GenerationPhase.ERROR
    assert s.last_error == "model overloaded"
    assert s.narrative[-1] == "❌ Error: model overloaded"


def test_publish_error_uses_publish_phase():
    s = _fold(_active(), PublishStatusEvent(status="validating"), PublishErrorEvent(message="no game yet"))
    assert s.phase == PublishPhase.ERROR
    assert s.last_error == "no game yet"


def test_inactive_session_ignores_events_except_trailing_suggestions():
    done = _fold(_active(), CodeEvent(code=GameCode(html="<div/>")))
    for event in (ExplanationEvent("late"), CodeChunkEvent("late"), ErrorEvent(message="late")):
        assert reduce(done, event) is done

    refreshed = reduce(done, SuggestionsEvent("- Add a timer"))
    assert refreshed.suggestions == ("Add a timer",)
    assert not refreshed.is_active


def test_cancel_clears_and_blocks_late_events():
    s = _fold(_active(), CodeChunkEvent("<div>"), SuggestionsEvent("- a"))
    cancelled = cancel_session(s)
    assert not cancelled.is_active
    assert cancelled.phase == GenerationPhase.IDLE
    assert cancelled.code_artifact is None
    assert cancelled.suggestions == ()
    for event in ALL_EVENTS:
        assert reduce(cancelled, event) is cancelled


def test_previous_artifact_is_retained_until_replaced():
    first = _fold(
        _active(),
        CodeChunkEvent("<div>old</div>"),
        SuggestionsEvent("- Old idea"),
        CodeEvent(code=GameCode(html="<div>old</div>")),
    )
    second = begin_session(first, request_id="req_2")
    assert second.code_artifact is not None
    assert second.code_artifact.retain_until_replaced
    assert second.code_artifact.content == "<div>old</div>"
    assert second.suggestions == ("Old idea",)
    assert second.suggestions_retained

    second = reduce(second, CodeChunkEvent("<p>new"))
    assert second.code_artifact.content == "<p>new"
    assert not second.code_artifact.retain_until_replaced
    second = reduce(second, CodeChunkEvent("</p>"))
    assert second.code_artifact.content == "<p>new</p>"

    second = reduce(second, SuggestionsEvent("- New idea"))
    assert second.suggestions == ("New idea",)
    assert not second.suggestions_retained


def test_begin_session_keeps_publish_result():
    published = replace(Session(), publish_result=PublishResult(live_url="https://x.test", site_name="x"))
    assert begin_session(published).publish_result == published.publish_result
