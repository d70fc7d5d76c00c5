from vibeplay.runtime.error_codes import ErrorCode
from vibeplay.runtime.protocol import (
    CodeEvent,
    ErrorEvent,
    ExplanationEvent,
    GameCode,
    PublishErrorEvent,
    PublishStatusEvent,
    PublishSuccessEvent,
    StatusEvent,
    UnknownEvent,
    event_to_dict,
    parse_event,
)
from vibeplay.runtime.transport.frames import FrameKind, decode_line


def test_decode_line_event_frame():
    frame = decode_line('data: {"type": "explanation", "payload": "A pong clone."}')
    assert frame.kind is FrameKind.EVENT
    assert frame.event == ExplanationEvent("A pong clone.")


def test_decode_line_accepts_missing_space_after_prefix():
    frame = decode_line('data:{"type": "status", "payload": "thinking"}\r\n')
    assert frame.kind is FrameKind.EVENT
    assert frame.event == StatusEvent(status="thinking")


def test_decode_line_done_sentinel():
    assert decode_line("data: [DONE]").kind is FrameKind.DONE


def test_decode_line_ignores_non_data_lines():
    for line in ("", ": keep-alive", "event: message", "id: 7", "data: "):
        assert decode_line(line).kind is FrameKind.IGNORED


def test_decode_line_drops_malformed_frames():
    bad_json = decode_line("data: {not json")
    assert bad_json.kind is FrameKind.DROPPED
    assert bad_json.reason is not None and bad_json.reason.startswith("invalid JSON")

    for data in ("[1, 2]", '"text"', '{"payload": "no type"}', '{"type": ""}'):
        frame = decode_line(f"data: {data}")
        assert frame.kind is FrameKind.DROPPED
        assert frame.reason == "not an event object"
        assert frame.data == data


def test_parse_event_unknown_type_and_bad_payloads():
    assert parse_event({"type": "heartbeat", "payload": 1}) == UnknownEvent(type_name="heartbeat", payload=1)
    assert isinstance(parse_event({"type": "status", "payload": "sleeping"}), UnknownEvent)
    assert isinstance(parse_event({"type": "explanation", "payload": {"x": 1}}), UnknownEvent)
    assert isinstance(parse_event({"type": "code", "payload": "<div/>"}), UnknownEvent)
    assert isinstance(parse_event({"type": "publish_status", "payload": "thinking"}), UnknownEvent)


def test_parse_event_structured_payloads():
    code = parse_event({"type": "code", "payload": {"html": "<canvas></canvas>", "js": "go()"}})
    assert code == CodeEvent(code=GameCode(html="<canvas></canvas>", css="", js="go()"))

    success = parse_event(
        {"type": "publish_success", "payload": {"live_url": "https://x.test", "site_name": "x"}}
    )
    assert success == PublishSuccessEvent(live_url="https://x.test", site_name="x", message="")

    assert parse_event({"type": "publish_status", "payload": "deploying"}) == PublishStatusEvent(status="deploying")


def test_parse_event_error_without_payload():
    assert parse_event({"type": "error"}) == ErrorEvent(message="Unknown error", code=ErrorCode.AGENT_ERROR)
    assert parse_event({"type": "publish_error", "payload": ""}) == PublishErrorEvent(message="Unknown error")


def test_game_code_document():
    game = GameCode(html="<div id='g'></div>", css="#g { color: red; }", js="start();")
    assert game.to_document() == (
        "<div id='g'></div>\n<style>\n#g { color: red; }\n</style>\n<script>\nstart();\n</script>"
    )
    assert GameCode().is_empty()
    assert GameCode(html="   ").to_document() == ""


def test_event_to_dict_keeps_wire_shape():
    assert event_to_dict(StatusEvent(status="generating")) == {"type": "status", "payload": "generating"}
    assert event_to_dict(UnknownEvent(type_name="ping", payload=None)) == {"type": "ping", "payload": None}
    assert event_to_dict(CodeEvent(code=GameCode(js="x"))) == {
        "type": "code",
        "payload": {"html": "", "css": "", "js": "x"},
    }
