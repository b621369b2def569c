"""
Per-turn invocation tracking.

Events accumulate in memory while a turn runs; :meth:`InvocationTracker.flush`
writes one ``agent_logs`` row with derived totals. Telemetry must never fail the
user-facing turn, so write errors are logged and swallowed.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .. import crud, models
from .client import Completion

logger = logging.getLogger(__name__)

# USD per 1M tokens, matched by longest model-name prefix.
MODEL_PRICING: Dict[str, Dict[str, float]] = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4.1-nano": {"input": 0.10, "output": 0.40},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
    "gpt-4.1": {"input": 2.00, "output": 8.00},
    "o4-mini": {"input": 1.10, "output": 4.40},
}
DEFAULT_PRICING = {"input": 2.50, "output": 10.00}


def pricing_for(model: Optional[str]) -> Dict[str, float]:
    if model:
        for prefix in sorted(MODEL_PRICING, key=len, reverse=True):
            if model.startswith(prefix):
                return MODEL_PRICING[prefix]
    return DEFAULT_PRICING


def calculate_cost(model: Optional[str], input_tokens: int, output_tokens: int) -> float:
    price = pricing_for(model)
    return (input_tokens / 1_000_000) * price["input"] + (output_tokens / 1_000_000) * price["output"]


def _sanitize(obj: Any) -> Any:
    if obj is None:
        return None
    return json.loads(json.dumps(obj, default=str))


class InvocationTracker:
    def __init__(self, user_id: Optional[str] = None, agent_id: Optional[str] = None,
                 action_id: Optional[str] = None, source: str = "unknown"):
        self.user_id = user_id
        self.agent_id = agent_id
        self.action_id = action_id
        self.source = source
        self.events: List[Dict[str, Any]] = []
        self.flushed = False

    def context(self, label: str, data: Any = None) -> None:
        self.events.append({"type": "context", "label": label, "data": _sanitize(data)})

    def api_call(self, completion: Completion) -> Dict[str, Any]:
        usage = completion.usage
        event = {
            "type": "api_call",
            "model": completion.model,
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
            "cache_read_tokens": usage.cache_read_tokens,
            "cache_creation_tokens": usage.cache_creation_tokens,
            "duration_ms": completion.duration_ms,
            "cost_usd": calculate_cost(completion.model, usage.input_tokens, usage.output_tokens),
            "stop_reason": completion.stop_reason,
        }
        self.events.append(event)
        return event

    def tool_call(self, name: str, tool_input: Any) -> None:
        self.events.append({"type": "tool_call", "tool_name": name, "tool_input": _sanitize(tool_input)})

    def tool_result(self, name: str, output: Dict[str, Any]) -> None:
        self.events.append({
            "type": "tool_result",
            "tool_name": name,
            "tool_output": _sanitize(output),
            "success": "error" not in (output or {}) and (output or {}).get("success") is not False,
        })

    def signal(self, name: str, data: Any = None) -> None:
        self.events.append({"type": "signal", "signal": name, "data": _sanitize(data)})

    def error(self, err: BaseException) -> None:
        self.events.append({
            "type": "error",
            "message": str(err) or type(err).__name__,
            "errorType": type(err).__name__,
            "status": getattr(err, "status_code", None),
        })

    def totals(self) -> Dict[str, Any]:
        total_input = total_output = total_duration = 0
        total_cost = 0.0
        tools_used: List[str] = []
        signal_emitted = None
        for evt in self.events:
            if evt["type"] == "api_call":
                total_input += evt.get("input_tokens") or 0
                total_output += evt.get("output_tokens") or 0
                total_cost += evt.get("cost_usd") or 0.0
                total_duration += evt.get("duration_ms") or 0
            elif evt["type"] == "tool_call" and evt["tool_name"] not in tools_used:
                tools_used.append(evt["tool_name"])
            elif evt["type"] == "signal":
                signal_emitted = evt["signal"]
        return {
            "total_input_tokens": total_input,
            "total_output_tokens": total_output,
            "total_cost_usd": round(total_cost, 6),
            "total_duration_ms": total_duration,
            "tools_used": tools_used,
            "signal_emitted": signal_emitted,
        }

    def flush(self, db: Session) -> Optional[models.AgentLog]:
        """Write the accumulated events as one log row. At most one write per tracker."""
        if self.flushed or not self.events or not self.user_id:
            return None
        self.flushed = True
        try:
            return crud.create_log(
                db,
                user_id=self.user_id,
                agent_id=self.agent_id,
                action_id=self.action_id,
                source=self.source,
                events=self.events,
                **self.totals(),
            )
        except Exception:
            logger.exception("[%s] Failed to write agent log", self.source)
            db.rollback()
            return None


def flush_tracker(tracker: InvocationTracker, session_factory) -> None:
    """Background-task entry point: flush on a session of its own."""
    db = session_factory()
    try:
        tracker.flush(db)
    finally:
        db.close()
