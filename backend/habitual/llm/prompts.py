"""
Context builder: layered system prompt plus the tool schemas offered for a turn.

Block order is fixed so the provider's prompt-prefix cache stays warm:

1. action context (volatile, uncached)
2. review context (volatile, uncached)
3. base instructions + filesystem guidance + agent overview (cacheable)
4. open-actions snapshot (cacheable)

Cacheable blocks depend only on the agent record and its open actions, never on
the clock or the current message.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .. import models
from .capabilities import Capabilities
from .client import SystemBlock
from .toolsets import ActionToolset, FilesystemToolset, NoteToolset, ReviewToolset
from .tools import action_summary, draft_details


@dataclass
class ReviewContext:
    action: models.Action
    pending_drafts: List[models.AgentDraft] = field(default_factory=list)


@dataclass
class PromptContext:
    system_blocks: List[SystemBlock]
    tools: List[Dict[str, Any]]

    @property
    def tool_names(self) -> List[str]:
        return [t["name"] for t in self.tools]


def build_base_prompt(agent: models.Agent) -> str:
    criteria = json.dumps(list(agent.success_criteria or []))
    return (
        "You're an autonomous agent helping someone achieve their goal. You do the work; they provide context.\n\n"
        "Your role:\n"
        "- Gather the context needed to create deliverables\n"
        "- Propose deliverables you will create, not tasks for them to do\n"
        "- Refine drafts through conversation until they're well-defined\n"
        "- Suggest when you'll do scheduled work\n\n"
        "Your voice: brief (2-3 sentences, match their length), practical, present tense, no cheerleading.\n\n"
        "Agent details:\n"
        f"- Name: {agent.name}\n"
        f"- North Star Goal: {agent.goal or 'Not yet defined'}\n"
        f"- Success Criteria: {criteria}\n"
        f"- Timeline: {agent.timeline or 'Not specified'}\n\n"
        "ASSETS vs ACTIONS:\n"
        "- If you can write the FULL content now (a document, email, code, prompt), emit GENERATE_ASSET.\n"
        "- If the work happens LATER at a scheduled time or needs execution outside this chat, emit GENERATE_ACTIONS.\n\n"
        "Immediate deliverable, respond EXACTLY in this format:\n"
        "GENERATE_ASSET\n"
        "---\n"
        "{\n"
        '  "title": "2-6 word title",\n'
        '  "description": "Brief description of what this is",\n'
        '  "type": "markdown|code|text|prompt",\n'
        '  "content": "The full content"\n'
        "}\n\n"
        "Scheduled work, respond EXACTLY in this format (no markdown, no code fences):\n"
        "GENERATE_ACTIONS\n"
        "---\n"
        "{\n"
        '  "title": "2-5 word title",\n'
        '  "description": "Brief overview of what you\'ll do",\n'
        '  "priority": "high|medium|low",\n'
        '  "taskType": "scheduled",\n'
        '  "taskConfig": {\n'
        '    "instructions": "Step-by-step instructions detailed enough for autonomous execution",\n'
        '    "expectedOutput": "What will be produced"\n'
        "  }\n"
        "}\n"
        "Generate ONE action at a time.\n\n"
        "Measurement check-ins: when the current action is a measurement and you have a 1-10 score for every "
        "dimension, respond EXACTLY in this format:\n"
        "STORE_MEASUREMENT\n"
        "---\n"
        "{\n"
        '  "dimensions": [{"name": "energy", "score": 7, "notes": "optional context"}],\n'
        '  "notes": "General observations (optional)"\n'
        "}\n\n"
        "TOOLS:\n"
        "- get_action_details(action_id): full details of one action\n"
        "- update_action(action_id, updates): change title, description, priority or taskConfig\n"
        "- complete_action(action_id): mark an action done; completed or dismissed actions cannot be completed again\n"
        "- create_note / get_notes / update_note: lightweight captures such as links, ideas and references\n"
        "Wait for a tool result before answering. If a tool returns an error, tell the user plainly and carry on."
    )


def build_filesystem_guidance(agent: models.Agent) -> str:
    return (
        "\n\nFILESYSTEM TOOLS:\n"
        "- read_file(path): read a file from your data directory\n"
        "- write_file(path, content, mode?): write a file (mode: overwrite or append)\n"
        "- list_files(path?): list your data directory\n"
        f"Your data directory: {agent.local_data_path}\n"
        "Prefer files for substantial, evolving documents and notes for quick captures."
    )


def build_action_context_prompt(action: Optional[models.Action]) -> str:
    if action is None:
        return ""
    config = action.task_config or {}
    prompt = (
        "CURRENT ACTION CONTEXT:\n"
        f"Action ID: {action.id}\n"
        f"Title: {action.title}\n"
        f"Description: {action.description or 'None'}\n"
        f"Type: {action.task_type}\n"
        f"Priority: {action.priority or 'medium'}\n"
        f"State: {action.state}"
    )
    if action.task_type == "manual" and action.content:
        prompt += f"\nContent:\n{action.content}"
    if config.get("instructions"):
        prompt += f"\nInstructions:\n{config['instructions']}"
    if config.get("expectedOutput"):
        prompt += f"\nExpected Output:\n{config['expectedOutput']}"
    if action.task_type == "measurement":
        dimensions = ", ".join(str(d) for d in config.get("dimensions") or [])
        prompt += (
            f"\nDimensions to measure: {dimensions}\n\n"
            "Guide the user through rating each dimension on a 1-10 scale, one or two at a time, and ask about "
            "notable scores. Once every dimension has a score, emit STORE_MEASUREMENT."
        )
    return prompt


def build_review_context_prompt(review: Optional[ReviewContext]) -> str:
    if review is None or not review.pending_drafts:
        return ""
    drafts = json.dumps([draft_details(d) for d in review.pending_drafts], indent=2, default=str)
    return (
        "## Review Context\n\n"
        "You are in draft review mode. Present the drafts one at a time: the key details, why you recommended it, "
        "and ask what the user thinks.\n\n"
        "After the user gives an opinion on a draft, call submit_draft_review with:\n"
        "- score (0-10) reflecting their interest: 8-10 keen, 5-7 interested with reservations, "
        "1-4 not interested, 0 rejected\n"
        "- feedback: a 1-2 sentence summary of what they actually said\n"
        "- user_tags: optional tags they used or that describe their view\n"
        "Never call submit_draft_review before the user has answered.\n\n"
        f"Review Action ID: {review.action.id}\n"
        "Call complete_action with this ID once every draft has been reviewed.\n\n"
        f"Pending drafts to review:\n{drafts}"
    )


def build_actions_list_prompt(open_actions: Sequence[models.Action]) -> str:
    if not open_actions:
        return ""
    summary = json.dumps([action_summary(a) for a in open_actions], indent=2)
    return (
        f"OPEN ACTIONS ({len(open_actions)}):\n{summary}\n\n"
        "Reference these when the user asks about their work or priorities. "
        "Use get_action_details for the full details of one action."
    )


def build_setup_prompt() -> str:
    return (
        "You help someone set up a new goal agent. In a few short exchanges, find out:\n"
        "- a short title for the agent\n"
        "- the north star goal, stated concretely\n"
        "- 2-4 measurable success criteria\n"
        "- a timeline\n\n"
        "Ask one question at a time and keep replies to 2-3 sentences. When you have all four, respond EXACTLY "
        "in this format and nothing else:\n"
        "READY_TO_CREATE\n"
        "---\n"
        "TITLE: short title\n"
        "GOAL: the goal\n"
        "SUCCESS_CRITERIA:\n"
        "- first criterion\n"
        "- second criterion\n"
        "TIMELINE: the timeline"
    )


class ContextBuilder:
    def __init__(self, capabilities: Optional[Capabilities] = None):
        self.capabilities = capabilities or Capabilities()

    def filesystem_enabled(self, agent: models.Agent) -> bool:
        return bool(
            self.capabilities.filesystem
            and agent.has_capability("filesystem")
            and agent.local_data_path
        )

    def build(
        self,
        agent: models.Agent,
        open_actions: Sequence[models.Action] = (),
        action_context: Optional[models.Action] = None,
        review_context: Optional[ReviewContext] = None,
    ) -> PromptContext:
        blocks: List[SystemBlock] = []

        action_prompt = build_action_context_prompt(action_context)
        if action_prompt:
            blocks.append(SystemBlock(action_prompt))
        review_prompt = build_review_context_prompt(review_context)
        if review_prompt:
            blocks.append(SystemBlock(review_prompt))

        base = build_base_prompt(agent)
        if self.filesystem_enabled(agent):
            base += build_filesystem_guidance(agent)
        if agent.overview:
            base += "\n\n---\nAGENT REFERENCE DOCUMENTATION:\n" + agent.overview
        blocks.append(SystemBlock(base, cacheable=True))

        actions_prompt = build_actions_list_prompt(open_actions)
        if actions_prompt:
            blocks.append(SystemBlock(actions_prompt, cacheable=True))

        return PromptContext(system_blocks=blocks, tools=self.select_tools(agent, review_context))

    def select_tools(self, agent: models.Agent, review_context: Optional[ReviewContext] = None) -> List[Dict[str, Any]]:
        tools = ActionToolset.tools()
        if agent.has_capability("notes", default=True):
            tools += NoteToolset.tools()
        if self.filesystem_enabled(agent):
            tools += FilesystemToolset.tools()
        if review_context is not None and review_context.pending_drafts:
            tools += ReviewToolset.tools()
        return tools
