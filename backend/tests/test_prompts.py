from habitual import crud, models
from habitual.ids import generate_draft_id
from habitual.llm.capabilities import Capabilities
from habitual.llm.prompts import ContextBuilder, ReviewContext


def _names(prompt):
    return set(prompt.tool_names)


def test_cacheable_blocks_are_identical_across_turns(db, user, agent, make_action):
    make_action(user, agent, title="Weekly posts")
    make_action(user, agent, title="Profile refresh", priority="high")
    builder = ContextBuilder(Capabilities())

    first = builder.build(agent, crud.list_open_actions(db, user.id, agent.id))
    second = builder.build(agent, crud.list_open_actions(db, user.id, agent.id))

    cached_first = [b.text for b in first.system_blocks if b.cacheable]
    cached_second = [b.text for b in second.system_blocks if b.cacheable]
    assert len(cached_first) == 2
    assert cached_first == cached_second
    assert first.tools == second.tools


def test_volatile_context_comes_first_and_does_not_touch_cached_blocks(db, user, agent, make_action):
    action = make_action(user, agent, title="Weekly posts", task_config={"instructions": "Write three posts"})
    open_actions = crud.list_open_actions(db, user.id, agent.id)
    builder = ContextBuilder(Capabilities())

    plain = builder.build(agent, open_actions)
    focused = builder.build(agent, open_actions, action_context=action)

    assert not focused.system_blocks[0].cacheable
    assert "CURRENT ACTION CONTEXT" in focused.system_blocks[0].text
    assert "Write three posts" in focused.system_blocks[0].text
    assert [b.cacheable for b in focused.system_blocks] == [False, True, True]
    assert [b.text for b in focused.system_blocks[1:]] == [b.text for b in plain.system_blocks]


def test_base_block_carries_agent_profile_and_overview(db, user, agent):
    agent.overview = "Posting guide: be concise."
    db.commit()
    prompt = ContextBuilder().build(agent, [])
    base = prompt.system_blocks[0]
    assert base.cacheable
    assert agent.goal in base.text
    assert '"1000 followers"' in base.text
    assert base.text.endswith("AGENT REFERENCE DOCUMENTATION:\nPosting guide: be concise.")
    assert len(prompt.system_blocks) == 1


def test_measurement_context_lists_dimensions(user, agent, make_action):
    action = make_action(user, agent, task_type="measurement",
                         task_config={"dimensions": ["energy", "focus", "mood"]})
    prompt = ContextBuilder().build(agent, [], action_context=action)
    assert "Dimensions to measure: energy, focus, mood" in prompt.system_blocks[0].text
    assert "STORE_MEASUREMENT" in prompt.system_blocks[0].text


def test_default_tools_are_action_and_note_tools(agent):
    prompt = ContextBuilder().build(agent, [])
    assert _names(prompt) == {
        "get_action_details", "update_action", "complete_action",
        "create_note", "get_notes", "update_note",
    }


def test_note_tools_can_be_disabled_per_agent(db, user):
    agent = crud.create_agent(db, user.id, name="Quiet", capabilities={"notes": False})
    assert "create_note" not in _names(ContextBuilder().build(agent, []))


def test_filesystem_tools_need_agent_and_deployment_capability(db, user, tmp_path):
    fs_agent = crud.create_agent(db, user.id, name="Research", capabilities={"filesystem": True},
                                 local_data_path="research")
    plain_agent = crud.create_agent(db, user.id, name="Plain", local_data_path="plain")

    enabled = ContextBuilder(Capabilities(filesystem=True, data_root=tmp_path))
    disabled = ContextBuilder(Capabilities(filesystem=False))

    assert "read_file" in _names(enabled.build(fs_agent, []))
    assert "FILESYSTEM TOOLS" in enabled.build(fs_agent, []).system_blocks[0].text
    assert "read_file" not in _names(disabled.build(fs_agent, []))
    assert "read_file" not in _names(enabled.build(plain_agent, []))


def test_review_tools_need_pending_drafts(db, user, agent, make_action):
    review_action = make_action(user, agent, title="Review companies")
    empty = ReviewContext(action=review_action, pending_drafts=[])
    prompt = ContextBuilder().build(agent, [], review_context=empty)
    assert "submit_draft_review" not in _names(prompt)
    assert len(prompt.system_blocks) == 1

    draft = models.AgentDraft(id=generate_draft_id(), user_id=user.id, agent_id=agent.id,
                              type="company", data={"name": "Acme"})
    db.add(draft)
    db.commit()
    review = ReviewContext(action=review_action, pending_drafts=[draft])
    prompt = ContextBuilder().build(agent, [], review_context=review)
    assert {"get_pending_drafts", "submit_draft_review"} <= _names(prompt)
    assert prompt.system_blocks[0].text.startswith("## Review Context")
    assert review_action.id in prompt.system_blocks[0].text
    assert draft.id in prompt.system_blocks[0].text
