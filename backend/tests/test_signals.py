import json

import pytest

from habitual.errors import SignalParseError
from habitual.llm.signals import (
    AGENT_CHAT_SIGNALS,
    GeneratedAction,
    GeneratedAsset,
    MeasurementPayload,
    ReadyToCreateGoal,
    Signal,
    SignalKind,
    SignalParser,
    format_signal,
    parse_signal,
)


ACTION = GeneratedAction.model_validate({
    "title": "Weekly LinkedIn Posts",
    "description": "Three posts every Monday",
    "priority": "high",
    "taskType": "scheduled",
    "taskConfig": {"instructions": "1. Review updates\n2. Write posts", "expectedOutput": "Three posts"},
})
ASSET = GeneratedAsset(
    title="Launch Email",
    description="Announcement email",
    type="markdown",
    content='# Hello\n\nUse {braces} and "quotes" freely: {"not": "json"}',
)
MEASUREMENT = MeasurementPayload.model_validate({
    "dimensions": [{"name": "energy", "score": 7, "notes": "slept well"}, {"name": "focus", "score": 8.5}],
    "notes": "Good week",
})
READY = ReadyToCreateGoal(
    title="Run a marathon",
    goal="Finish a full marathon under four hours",
    success_criteria=["Run 40km per week", "Complete a half marathon"],
    timeline="9 months",
)


@pytest.mark.parametrize("signal", [
    Signal(SignalKind.GENERATE_ACTIONS, ACTION),
    Signal(SignalKind.GENERATE_ASSET, ASSET),
    Signal(SignalKind.STORE_MEASUREMENT, MEASUREMENT),
    Signal(SignalKind.READY_TO_CREATE, READY),
], ids=lambda s: s.kind.value)
def test_format_then_parse_returns_same_signal(signal):
    assert parse_signal(format_signal(signal)) == signal


def test_plain_text_is_not_a_signal():
    assert parse_signal("Sure, let's talk about your posting schedule.") is None
    assert parse_signal("") is None


def test_header_without_separator_is_plain_text():
    assert parse_signal('GENERATE_ACTIONS\n{"title": "x"}') is None


def test_header_must_be_first_line():
    text = 'Here you go:\nGENERATE_ACTIONS\n---\n{"title": "x"}'
    assert parse_signal(text) is None


def test_leading_whitespace_is_trimmed():
    text = "\n\n  " + format_signal(Signal(SignalKind.GENERATE_ASSET, ASSET)) + "\n\n"
    signal = parse_signal(text)
    assert signal.kind is SignalKind.GENERATE_ASSET
    assert signal.payload.content == ASSET.content


def test_nested_objects_and_string_braces_are_isolated():
    text = (
        "GENERATE_ASSET\n"
        "---\n"
        "Here is the asset:\n"
        "{\n"
        '  "title": "Schema",\n'
        '  "description": "JSON schema",\n'
        '  "type": "code",\n'
        '  "content": "{\\"a\\": {\\"b\\": [1, 2]}} and a lone } brace and \\"{\\""\n'
        "}\n"
        "Let me know what you think! {not json}"
    )
    signal = parse_signal(text)
    assert signal.payload.type == "code"
    assert signal.payload.content == '{"a": {"b": [1, 2]}} and a lone } brace and "{"'


def test_trailing_text_on_closing_line_is_ignored():
    text = 'STORE_MEASUREMENT\n---\n{"dimensions": [{"name": "mood", "score": 6}]} thanks!'
    signal = parse_signal(text)
    assert signal.payload.dimensions[0].name == "mood"
    assert signal.payload.dimensions[0].score == 6


def test_unterminated_json_is_an_error():
    text = 'GENERATE_ACTIONS\n---\n{\n  "title": "Posts",\n  "taskConfig": {"instructions": "x"'
    with pytest.raises(SignalParseError) as exc:
        parse_signal(text)
    assert exc.value.kind == "GENERATE_ACTIONS"
    assert "Unterminated" in str(exc.value)


def test_missing_json_object_is_an_error():
    with pytest.raises(SignalParseError):
        parse_signal("GENERATE_ASSET\n---\nI could not produce the content.")


def test_malformed_json_is_an_error():
    text = 'GENERATE_ASSET\n---\n{"title": "x", "description": "y", type: "text"}'
    with pytest.raises(SignalParseError) as exc:
        parse_signal(text)
    assert exc.value.raw.startswith("{")


def test_schema_violation_is_an_error():
    payload = {"title": "Posts", "description": "Weekly", "taskConfig": {"instructions": "Write"}}
    with pytest.raises(SignalParseError, match="Invalid GENERATE_ACTIONS payload"):
        parse_signal("GENERATE_ACTIONS\n---\n" + json.dumps(payload))


def test_measurement_score_out_of_range_is_an_error():
    payload = {"dimensions": [{"name": "energy", "score": 11}]}
    with pytest.raises(SignalParseError):
        parse_signal("STORE_MEASUREMENT\n---\n" + json.dumps(payload))


def test_generated_action_defaults():
    payload = {"title": "Posts", "description": "Weekly", "taskConfig": {"instructions": "a", "expectedOutput": "b"}}
    signal = parse_signal("GENERATE_ACTIONS\n---\n" + json.dumps(payload))
    assert signal.payload.priority == "medium"
    assert signal.payload.task_type == "scheduled"


def test_signal_outside_accepted_set_is_plain_text():
    text = format_signal(Signal(SignalKind.READY_TO_CREATE, READY))
    assert SignalParser(AGENT_CHAT_SIGNALS).parse(text) is None
    assert SignalParser(AGENT_CHAT_SIGNALS).detect(text) is None


def test_detect_does_not_touch_payload():
    assert SignalParser().detect("GENERATE_ASSET\n---\n{broken") is SignalKind.GENERATE_ASSET


def test_ready_to_create_continuation_lines():
    text = (
        "READY_TO_CREATE\n"
        "---\n"
        "TITLE: Learn Spanish\n"
        "GOAL: Hold a 30 minute conversation\n"
        "with a native speaker\n"
        "\n"
        "SUCCESS_CRITERIA:\n"
        "- Finish A2 course\n"
        "-  Weekly tutor sessions\n"
        "TIMELINE: 6 months,\n"
        "reviewed monthly\n"
    )
    signal = parse_signal(text)
    assert signal.payload.goal == "Hold a 30 minute conversation with a native speaker"
    assert signal.payload.success_criteria == ["Finish A2 course", "Weekly tutor sessions"]
    assert signal.payload.timeline == "6 months, reviewed monthly"


def test_ready_to_create_missing_criteria_is_an_error():
    text = "READY_TO_CREATE\n---\nTITLE: T\nGOAL: G\nSUCCESS_CRITERIA:\nTIMELINE: soon"
    with pytest.raises(SignalParseError):
        parse_signal(text)
