import pytest

from conftest import text_completion
from habitual import crud
from habitual.llm.tracker import InvocationTracker, calculate_cost, flush_tracker, pricing_for


def test_pricing_uses_longest_prefix():
    assert pricing_for("gpt-4o-mini-2024-07-18") == {"input": 0.15, "output": 0.60}
    assert pricing_for("gpt-4o-2024-08-06") == {"input": 2.50, "output": 10.00}
    assert pricing_for("some-future-model") == pricing_for(None)


def test_cost_per_million_tokens():
    assert calculate_cost("gpt-4.1-mini", 1_000_000, 1_000_000) == pytest.approx(2.0)


def test_totals_sum_calls_and_dedupe_tools():
    tracker = InvocationTracker(user_id="u-1", agent_id="agent-1", source="test")
    tracker.api_call(text_completion("a", input_tokens=100, output_tokens=10))
    tracker.tool_call("get_notes", {})
    tracker.tool_result("get_notes", {"notes": []})
    tracker.tool_call("create_note", {"title": "x"})
    tracker.tool_result("create_note", {"error": "Missing required fields: content"})
    tracker.tool_call("get_notes", {"status": "active"})
    tracker.api_call(text_completion("b", input_tokens=200, output_tokens=20))
    tracker.signal("GENERATE_ASSET", {"title": "t"})

    totals = tracker.totals()
    assert totals["total_input_tokens"] == 300
    assert totals["total_output_tokens"] == 30
    assert totals["total_duration_ms"] == 10
    assert totals["tools_used"] == ["get_notes", "create_note"]
    assert totals["signal_emitted"] == "GENERATE_ASSET"
    assert totals["total_cost_usd"] == round(calculate_cost("gpt-4o", 300, 30), 6)
    results = [e["success"] for e in tracker.events if e["type"] == "tool_result"]
    assert results == [True, False]


def test_flush_writes_one_log(db, user, agent):
    tracker = InvocationTracker(user_id=user.id, agent_id=agent.id, source="agent-chat")
    tracker.context("request", {"message_length": 5})
    tracker.api_call(text_completion("hi"))

    log = tracker.flush(db)
    assert log.id.startswith("alog-")
    assert log.total_input_tokens == 100
    assert [e["type"] for e in log.events] == ["context", "api_call"]
    assert tracker.flush(db) is None
    assert len(crud.list_logs(db, agent.id, user.id)) == 1


def test_flush_skips_empty_tracker_and_missing_user(db, user, agent):
    assert InvocationTracker(user_id=user.id, agent_id=agent.id).flush(db) is None
    anonymous = InvocationTracker(user_id=None, agent_id=agent.id)
    anonymous.context("request")
    assert anonymous.flush(db) is None
    assert crud.list_logs(db, agent.id, user.id) == []


def test_flush_failure_is_swallowed(db, user, agent, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(crud, "create_log", broken)
    tracker = InvocationTracker(user_id=user.id, agent_id=agent.id)
    tracker.context("request")
    assert tracker.flush(db) is None


def test_flush_tracker_uses_its_own_session(session_factory, user, agent, db):
    tracker = InvocationTracker(user_id=user.id, agent_id=agent.id, source="setup-chat")
    tracker.error(ValueError("bad input"))
    flush_tracker(tracker, session_factory)
    logs = crud.list_logs(db, agent.id, user.id)
    assert len(logs) == 1
    assert logs[0].events[0] == {"type": "error", "message": "bad input", "errorType": "ValueError", "status": None}
