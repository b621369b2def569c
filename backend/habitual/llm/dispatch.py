"""
Bounded tool dispatch: one completion, at most one tool round, one follow-up.

Tool calls from the first completion run sequentially in request order and
their results are appended in the same order. Tool calls the follow-up asks
for are recorded and ignored; its text is the turn's final output. Provider
errors propagate; tool errors never do.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .client import (
    Completion,
    LLMService,
    SystemBlock,
    ToolCall,
    assistant_tool_message,
    tool_result_message,
)
from .registry import ToolRegistry
from .tracker import InvocationTracker

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    text: str
    completions: List[Completion] = field(default_factory=list)
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_results: List[Dict[str, Any]] = field(default_factory=list)
    ignored_tool_calls: List[ToolCall] = field(default_factory=list)


class ToolDispatchLoop:
    def __init__(self, llm: LLMService, registry: ToolRegistry, tracker: InvocationTracker):
        self.llm = llm
        self.registry = registry
        self.tracker = tracker

    def _complete(self, messages, tools, system_blocks) -> Completion:
        completion = self.llm.complete(messages, tools=tools or None, system_blocks=system_blocks)
        self.tracker.api_call(completion)
        return completion

    def run(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        system_blocks: Optional[List[SystemBlock]] = None,
    ) -> DispatchResult:
        first = self._complete(messages, tools, system_blocks)
        if not first.tool_calls:
            return DispatchResult(text=first.text, completions=[first])

        conversation = list(messages) + [assistant_tool_message(first)]
        results: List[Dict[str, Any]] = []
        for call in first.tool_calls:
            self.tracker.tool_call(call.name, call.input)
            result = self.registry.execute(call)
            self.tracker.tool_result(call.name, result)
            results.append(result)
            conversation.append(tool_result_message(call, result))

        follow_up = self._complete(conversation, tools, system_blocks)
        if follow_up.tool_calls:
            logger.warning(
                "Ignoring %d tool call(s) requested after the tool round: %s",
                len(follow_up.tool_calls),
                ", ".join(c.name for c in follow_up.tool_calls),
            )
            self.tracker.context("ignored_tool_calls", [{"name": c.name, "input": c.input} for c in follow_up.tool_calls])

        return DispatchResult(
            text=follow_up.text,
            completions=[first, follow_up],
            tool_calls=list(first.tool_calls),
            tool_results=results,
            ignored_tool_calls=list(follow_up.tool_calls),
        )
