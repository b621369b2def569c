import json

import pytest

from conftest import text_completion, tool_completion
from habitual import crud, models
from habitual.errors import LLMProviderError
from habitual.ids import generate_draft_id

ASSET = "GENERATE_ASSET\n---\n" + json.dumps({
    "title": "LinkedIn Bio",
    "description": "Profile summary",
    "type": "markdown",
    "content": "# About me\nI build {things}.",
})


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_requires_auth(client, agent):
    resp = client.post("/api/agent-chat", json={"agent_id": agent.id, "message": "hi"})
    assert resp.status_code == 401


def test_blank_message_is_rejected_before_model_call(client, auth_headers, agent, llm):
    resp = client.post("/api/agent-chat", json={"agent_id": agent.id, "message": "   "}, headers=auth_headers)
    assert resp.status_code == 422
    assert llm.calls == []


def test_unknown_agent_is_404(client, auth_headers, llm):
    resp = client.post("/api/agent-chat", json={"agent_id": "agent-nope", "message": "hi"}, headers=auth_headers)
    assert resp.status_code == 404
    assert llm.calls == []


def test_other_users_action_context_is_404(client, auth_headers, agent, other_user, make_action, llm):
    foreign = make_action(other_user, None)
    resp = client.post("/api/agent-chat", json={"agent_id": agent.id, "message": "hi", "action_id": foreign.id},
                       headers=auth_headers)
    assert resp.status_code == 404
    assert llm.calls == []


def test_conversational_turn(client, auth_headers, agent, user, llm, db):
    llm.script(text_completion("What topics do you want to post about?"))
    resp = client.post("/api/agent-chat", json={
        "agent_id": agent.id,
        "message": "Help me post more",
        "chat_history": [{"role": "assistant", "content": "Hi! How can I help?"}],
    }, headers=auth_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["response"] == "What topics do you want to post about?"
    assert body["signal"] is None
    assert body["draft"] is None
    assert body["usage"]["total_input_tokens"] == 100

    logs = crud.list_logs(db, agent.id, user.id)
    assert len(logs) == 1
    assert logs[0].source == "agent-chat"


def test_asset_turn_then_define(client, auth_headers, agent, user, llm, db):
    llm.script(text_completion(ASSET))
    body = client.post("/api/agent-chat", json={"agent_id": agent.id, "message": "Write my bio"},
                       headers=auth_headers).json()
    draft = body["draft"]
    assert body["signal"]["type"] == "GENERATE_ASSET"
    assert draft["state"] == "draft"
    assert draft["taskType"] == "manual"
    assert crud.list_actions(db, user.id) == []

    resp = client.post("/api/actions/define", json={
        "agent_id": agent.id,
        "title": draft["title"],
        "description": draft["description"],
        "taskType": draft["taskType"],
        "taskConfig": draft["taskConfig"],
        "type": draft["type"],
        "content": draft["content"],
    }, headers=auth_headers)
    assert resp.status_code == 201
    action = resp.json()
    assert action["state"] == "open"
    assert action["content"] == "# About me\nI build {things}."

    resp = client.get(f"/api/agents/{agent.id}", headers=auth_headers)
    assert resp.json()["total_actions"] == 1


def test_tool_error_does_not_fail_turn(client, auth_headers, agent, other_user, make_action, llm):
    foreign = make_action(other_user, None)
    llm.script(
        tool_completion(("complete_action", {"action_id": foreign.id})),
        text_completion("I couldn't complete that one, sorry."),
    )
    resp = client.post("/api/agent-chat", json={"agent_id": agent.id, "message": f"complete {foreign.id}"},
                       headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["usage"]["tools_used"] == ["complete_action"]


@pytest.mark.parametrize("kind,status", [
    (LLMProviderError.TIMEOUT, 504),
    (LLMProviderError.RATE_LIMITED, 429),
    (LLMProviderError.UNAVAILABLE, 503),
    (LLMProviderError.PROVIDER, 502),
])
def test_provider_errors_map_to_status(client, auth_headers, agent, user, llm, db, kind, status):
    llm.script(LLMProviderError(kind, "upstream said no", status_code=None))
    resp = client.post("/api/agent-chat", json={"agent_id": agent.id, "message": "hi"}, headers=auth_headers)
    assert resp.status_code == status
    assert resp.json()["detail"] == LLMProviderError(kind, "").user_message

    logs = crud.list_logs(db, agent.id, user.id)
    assert len(logs) == 1
    assert logs[0].events[-1]["type"] == "error"


def test_signal_failure_is_502(client, auth_headers, agent, llm):
    llm.script(text_completion('GENERATE_ACTIONS\n---\n{"title": "Posts"}'))
    resp = client.post("/api/agent-chat", json={"agent_id": agent.id, "message": "schedule posts"},
                       headers=auth_headers)
    assert resp.status_code == 502
    assert "Failed to generate" in resp.json()["detail"]


def test_measurement_turn(client, auth_headers, agent, user, make_action, llm):
    action = make_action(user, agent, task_type="measurement", task_config={"dimensions": ["energy"]})
    llm.script(text_completion('STORE_MEASUREMENT\n---\n{"dimensions": [{"name": "energy", "score": 4}]}'))
    resp = client.post("/api/agent-chat", json={"agent_id": agent.id, "message": "about a 4",
                                                "action_id": action.id}, headers=auth_headers)
    body = resp.json()
    assert resp.status_code == 200
    assert body["measurement"]["action_id"] == action.id
    assert body["measurement"]["dimensions"][0]["score"] == 4

    listed = client.get(f"/api/agents/{agent.id}/measurements", headers=auth_headers).json()
    assert [m["id"] for m in listed] == [body["measurement"]["id"]]


def test_setup_chat(client, auth_headers, llm):
    llm.script(
        text_completion("What's your timeline?"),
        text_completion("READY_TO_CREATE\n---\nTITLE: Spanish\nGOAL: Converse for 30 minutes\n"
                        "SUCCESS_CRITERIA:\n- Pass A2\n- Weekly tutor\nTIMELINE: 6 months"),
    )
    first = client.post("/api/setup-chat", json={"message": "I want to learn Spanish"}, headers=auth_headers).json()
    assert first == {"ready": False, "response": "What's your timeline?", "agent_data": None}

    second = client.post("/api/setup-chat", json={"message": "6 months"}, headers=auth_headers).json()
    assert second["ready"] is True
    data = second["agent_data"]
    assert data["name"] == "Spanish"
    assert data["success_criteria"] == ["Pass A2", "Weekly tutor"]

    created = client.post("/api/agents", json={
        "name": data["name"], "goal": data["goal"],
        "success_criteria": data["success_criteria"], "timeline": data["timeline"],
    }, headers=auth_headers)
    assert created.status_code == 201
    assert created.json()["total_actions"] == 0


def test_agent_routes_are_scoped_to_owner(client, auth_headers, db, other_user):
    foreign = crud.create_agent(db, other_user.id, name="Not yours")
    assert client.get(f"/api/agents/{foreign.id}", headers=auth_headers).status_code == 404
    assert client.patch(f"/api/agents/{foreign.id}", json={"name": "Mine"}, headers=auth_headers).status_code == 404
    assert client.get(f"/api/agents/{foreign.id}/logs", headers=auth_headers).status_code == 404


def test_update_agent_merges_capabilities(client, auth_headers, agent):
    resp = client.patch(f"/api/agents/{agent.id}", json={"capabilities": {"filesystem": True}, "status": "paused"},
                        headers=auth_headers)
    body = resp.json()
    assert body["capabilities"] == {"notes": True, "filesystem": True}
    assert body["status"] == "paused"


def test_action_lifecycle_routes(client, auth_headers, agent):
    created = client.post("/api/actions/define", json={
        "agent_id": agent.id,
        "title": "Morning journal",
        "taskType": "scheduled",
        "taskConfig": {"instructions": "Prompt a reflection", "recurrence": {"type": "daily", "time": "08:00"}},
    }, headers=auth_headers).json()
    action_id = created["id"]

    started = client.post(f"/api/actions/{action_id}/start", headers=auth_headers).json()
    assert started["state"] == "in_progress"

    done = client.post(f"/api/actions/{action_id}/complete", headers=auth_headers).json()
    assert done["action"]["state"] == "completed"
    assert done["next_action"]["state"] == "scheduled"
    assert "T08:00:00" in done["next_action"]["schedule_time"]

    again = client.post(f"/api/actions/{action_id}/complete", headers=auth_headers)
    assert again.status_code == 409

    states = client.get("/api/actions", params={"agent_id": agent.id, "state": "scheduled"},
                        headers=auth_headers).json()
    assert [a["id"] for a in states] == [done["next_action"]["id"]]

    agent_body = client.get(f"/api/agents/{agent.id}", headers=auth_headers).json()
    assert (agent_body["total_actions"], agent_body["completed_actions"], agent_body["in_progress_actions"]) == (2, 1, 0)


def test_dismiss_requires_reason(client, auth_headers, agent, user, make_action):
    action = make_action(user, agent)
    assert client.post(f"/api/actions/{action.id}/dismiss", json={"reason": ""},
                       headers=auth_headers).status_code == 422
    resp = client.post(f"/api/actions/{action.id}/dismiss", json={"reason": "Changed plans"}, headers=auth_headers)
    assert resp.json()["dismissed_reason"] == "Changed plans"
    assert client.patch(f"/api/actions/{action.id}", json={"title": "x"}, headers=auth_headers).status_code == 409


def _pending_draft(db, user, agent, draft_type, name):
    draft = models.AgentDraft(id=generate_draft_id(), user_id=user.id, agent_id=agent.id,
                              type=draft_type, status="pending", data={"name": name})
    db.add(draft)
    db.commit()
    return draft


def test_review_batch_only_holds_the_review_actions_draft_type(client, auth_headers, agent, user, make_action, llm, db):
    review_action = make_action(user, agent, title="Review companies", task_config={"draftType": "company"})
    company = _pending_draft(db, user, agent, "company", "Acme")
    article = _pending_draft(db, user, agent, "article", "Unrelated read")
    llm.script(text_completion("Let's start with Acme."))

    resp = client.post("/api/agent-chat", json={"agent_id": agent.id, "message": "let's review",
                                                "review_action_id": review_action.id}, headers=auth_headers)
    assert resp.status_code == 200
    review_block = llm.calls[0]["system_blocks"][0].text
    assert review_block.startswith("## Review Context")
    assert company.id in review_block
    assert article.id not in review_block


def test_other_draft_types_do_not_enable_review_tools(client, auth_headers, agent, user, make_action, llm, db):
    review_action = make_action(user, agent, title="Review companies", task_config={"draftType": "company"})
    _pending_draft(db, user, agent, "article", "Unrelated read")
    llm.script(text_completion("Nothing to review right now."))

    client.post("/api/agent-chat", json={"agent_id": agent.id, "message": "let's review",
                                         "review_action_id": review_action.id}, headers=auth_headers)
    tool_names = {t["name"] for t in llm.calls[0]["tools"] or []}
    assert "submit_draft_review" not in tool_names
    assert not llm.calls[0]["system_blocks"][0].text.startswith("## Review Context")
