"""
Chat turn orchestration.

A turn builds the prompt, runs the bounded tool dispatch, parses the reply for
the signals the flow accepts and applies them. Usage is charged to the agent
(and the action in context) whether or not the turn succeeds.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .. import crud, lifecycle, models
from ..errors import SignalParseError
from .capabilities import Capabilities
from .client import LLMService, SystemBlock
from .dispatch import ToolDispatchLoop
from .prompts import ContextBuilder, ReviewContext, build_setup_prompt
from .registry import ToolRegistry
from .signals import AGENT_CHAT_SIGNALS, SETUP_CHAT_SIGNALS, Signal, SignalKind, SignalParser
from .tracker import InvocationTracker

logger = logging.getLogger(__name__)

EMPTY_REPLY = "Sorry, I couldn't put together a response. Could you rephrase that?"


@dataclass
class TurnResult:
    reply: str
    signal: Optional[Signal] = None
    draft: Optional[Dict[str, Any]] = None
    measurement: Optional[models.Measurement] = None
    usage: Dict[str, Any] = field(default_factory=dict)


class ChatOrchestrator:
    """Runs one user turn: context, bounded tool dispatch, signal handling, usage accounting."""

    def __init__(self, llm: LLMService, capabilities: Optional[Capabilities] = None, history_window: int = 12):
        self.llm = llm
        self.capabilities = capabilities or Capabilities()
        self.history_window = history_window
        self.context_builder = ContextBuilder(self.capabilities)

    def _history(self, chat_history: Optional[List[Dict[str, Any]]]) -> List[Dict[str, str]]:
        msgs = [
            {"role": m["role"], "content": str(m.get("content") or "")}
            for m in (chat_history or [])
            if m.get("role") in ("user", "assistant") and m.get("content")
        ]
        return msgs[-self.history_window:] if self.history_window > 0 else []

    def run_turn(
        self,
        db: Session,
        user_id: str,
        agent: models.Agent,
        message: str,
        tracker: InvocationTracker,
        chat_history: Optional[List[Dict[str, Any]]] = None,
        action_context: Optional[models.Action] = None,
        review_context: Optional[ReviewContext] = None,
    ) -> TurnResult:
        open_actions = crud.list_open_actions(db, user_id, agent.id)
        prompt = self.context_builder.build(agent, open_actions, action_context, review_context)
        tracker.context("prompt", {
            "blocks": len(prompt.system_blocks),
            "cacheable": sum(1 for b in prompt.system_blocks if b.cacheable),
            "tools": prompt.tool_names,
            "open_actions": len(open_actions),
            "action_id": action_context.id if action_context is not None else None,
            "pending_drafts": len(review_context.pending_drafts) if review_context is not None else 0,
        })

        messages = self._history(chat_history) + [{"role": "user", "content": message}]
        registry = ToolRegistry(db, user_id, agent, self.capabilities)
        try:
            result = ToolDispatchLoop(self.llm, registry, tracker).run(messages, prompt.tools, prompt.system_blocks)
            signal = SignalParser(AGENT_CHAT_SIGNALS).parse(result.text)
            turn = TurnResult(reply=result.text.strip() or EMPTY_REPLY, signal=signal)
            if signal is not None:
                self._apply_signal(db, user_id, agent, action_context, signal, turn)
                tracker.signal(signal.kind.value, signal.as_dict()["data"])

            if action_context is not None and action_context.state in lifecycle.STARTABLE_STATES:
                lifecycle.start_action(db, action_context)
        finally:
            # Tokens spent on a failed turn are still billed.
            self._account_usage(db, agent, action_context, tracker)

        turn.usage = tracker.totals()
        return turn

    def _apply_signal(self, db: Session, user_id: str, agent: models.Agent,
                      action_context: Optional[models.Action], signal: Signal, turn: TurnResult) -> None:
        if signal.kind is SignalKind.GENERATE_ACTIONS:
            turn.draft = lifecycle.draft_from_signal(signal, agent.id)
            turn.reply = f"I've drafted an action: **{signal.payload.title}**. Review it and define it when you're ready."
        elif signal.kind is SignalKind.GENERATE_ASSET:
            turn.draft = lifecycle.draft_from_signal(signal, agent.id)
            turn.reply = f"I've created **{signal.payload.title}**. Open it to view, copy or save it."
        elif signal.kind is SignalKind.STORE_MEASUREMENT:
            if action_context is None or action_context.agent_id != agent.id:
                raise SignalParseError(
                    "STORE_MEASUREMENT requires a measurement action for this agent",
                    kind=signal.kind.value,
                )
            turn.measurement = lifecycle.record_measurement(db, user_id, agent, action_context, signal.payload)
            count = len(signal.payload.dimensions)
            turn.reply = f"Thanks, I've recorded your check-in across {count} dimension{'s' if count != 1 else ''}."
            logger.info("Stored measurement %s for action %s", turn.measurement.id, action_context.id)
        else:
            raise SignalParseError(f"Unexpected signal {signal.kind.value} in agent chat", kind=signal.kind.value)

    def _account_usage(self, db: Session, agent: models.Agent,
                       action_context: Optional[models.Action], tracker: InvocationTracker) -> None:
        if not any(evt["type"] == "api_call" for evt in tracker.events):
            return
        totals = tracker.totals()
        tokens = totals["total_input_tokens"] + totals["total_output_tokens"]
        crud.increment_agent_metrics(db, agent.id, tokens=tokens, cost=totals["total_cost_usd"])
        if action_context is not None:
            for evt in tracker.events:
                if evt["type"] == "api_call":
                    crud.record_action_usage(db, action_context, {
                        "model": evt["model"],
                        "input_tokens": evt["input_tokens"],
                        "output_tokens": evt["output_tokens"],
                        "cost_usd": evt["cost_usd"],
                        "duration_ms": evt["duration_ms"],
                    })
        db.commit()

    def run_setup_turn(
        self,
        message: str,
        tracker: InvocationTracker,
        chat_history: Optional[List[Dict[str, Any]]] = None,
    ) -> TurnResult:
        """Onboarding turn: no tools, the only accepted signal is READY_TO_CREATE."""
        messages = self._history(chat_history) + [{"role": "user", "content": message}]
        completion = self.llm.complete(messages, tools=None, system_blocks=[SystemBlock(build_setup_prompt(), cacheable=True)])
        tracker.api_call(completion)

        signal = SignalParser(SETUP_CHAT_SIGNALS).parse(completion.text)
        turn = TurnResult(reply=completion.text.strip() or EMPTY_REPLY, signal=signal)
        if signal is not None:
            turn.reply = f"Great, I have what I need to set up **{signal.payload.title}**."
            tracker.signal(signal.kind.value, signal.as_dict()["data"])
        turn.usage = tracker.totals()
        return turn
