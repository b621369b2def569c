"""
Draft / action lifecycle.

    draft ──define──> open ──schedule──> scheduled
                       │                    │
                       └──────start─────────┴──> in_progress
    open | scheduled | in_progress ──complete──> completed   (terminal)
    open | scheduled | in_progress ──dismiss───> dismissed   (terminal)

Drafts are never stored: they live in a chat turn's response until the caller
defines them. Completing a daily-recurring action spawns the next occurrence.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from . import crud, models
from .errors import LifecycleError
from .llm.signals import GeneratedAction, GeneratedAsset, MeasurementPayload, Signal
from .llm.tools import parse_time_of_day
from .models import utcnow

logger = logging.getLogger(__name__)


class ActionState(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DISMISSED = "dismissed"


TERMINAL_STATES = frozenset({ActionState.COMPLETED.value, ActionState.DISMISSED.value})
STARTABLE_STATES = frozenset({ActionState.OPEN.value, ActionState.SCHEDULED.value})


@dataclass
class CompletionOutcome:
    action: models.Action
    next_action: Optional[models.Action] = None


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def _ensure_not_terminal(action: models.Action, verb: str) -> None:
    if action.state == ActionState.COMPLETED.value:
        raise LifecycleError(f"Cannot {verb} an action that is already completed")
    if action.state == ActionState.DISMISSED.value:
        raise LifecycleError(f"Cannot {verb} a dismissed action")


# ============ Drafts ============

def draft_from_signal(signal: Signal, agent_id: str) -> Dict[str, Any]:
    """Ephemeral action proposal for the caller to review and later define."""
    payload = signal.payload
    if isinstance(payload, GeneratedAction):
        return {
            "state": ActionState.DRAFT.value,
            "agentId": agent_id,
            "title": payload.title,
            "description": payload.description,
            "priority": payload.priority,
            "taskType": payload.task_type,
            "taskConfig": payload.task_config.model_dump(by_alias=True),
        }
    if isinstance(payload, GeneratedAsset):
        return {
            "state": ActionState.DRAFT.value,
            "agentId": agent_id,
            "title": payload.title,
            "description": payload.description,
            "priority": "medium",
            "taskType": "manual",
            "taskConfig": {},
            "type": payload.type,
            "content": payload.content,
        }
    raise ValueError(f"{signal.kind.value} does not produce an action draft")


def define_action(
    db: Session,
    user_id: str,
    agent: models.Agent,
    title: str,
    description: str = "",
    priority: str = "medium",
    task_type: str = "scheduled",
    task_config: Optional[Dict[str, Any]] = None,
    type: Optional[str] = None,
    content: Optional[str] = None,
    schedule_time: Optional[datetime] = None,
    project_id: Optional[str] = None,
) -> models.Action:
    """Persist a draft. Lands in ``open``, or ``scheduled`` when a time is given."""
    state = ActionState.SCHEDULED if schedule_time else ActionState.OPEN
    action = crud.create_action(
        db,
        user_id,
        agent_id=agent.id,
        project_id=project_id,
        title=title.strip(),
        description=description or "",
        priority=priority or "medium",
        task_type=task_type or "scheduled",
        task_config=dict(task_config or {}),
        type=type,
        content=content,
        state=state.value,
        schedule_time=schedule_time,
    )
    logger.info("Defined action %s for agent %s (%s)", action.id, agent.id, action.state)
    return action


# ============ Transitions ============

def schedule_action(db: Session, action: models.Action, when: datetime) -> models.Action:
    _ensure_not_terminal(action, "schedule")
    if action.state == ActionState.IN_PROGRESS.value:
        raise LifecycleError("Cannot schedule an action that is already in progress")
    return crud.update_action(db, action, {"state": ActionState.SCHEDULED.value, "schedule_time": when})


def start_action(db: Session, action: models.Action, now: Optional[datetime] = None) -> models.Action:
    _ensure_not_terminal(action, "start")
    if action.state == ActionState.IN_PROGRESS.value:
        return action
    if action.state not in STARTABLE_STATES:
        raise LifecycleError(f"Cannot start an action in state '{action.state}'")
    action.state = ActionState.IN_PROGRESS.value
    action.started_at = action.started_at or now or utcnow()
    if action.agent_id:
        crud.increment_agent_counter(db, action.agent_id, "in_progress_actions", 1)
    db.commit()
    db.refresh(action)
    return action


def complete_action(db: Session, action: models.Action, now: Optional[datetime] = None) -> CompletionOutcome:
    _ensure_not_terminal(action, "complete")
    now = now or utcnow()
    was_in_progress = action.state == ActionState.IN_PROGRESS.value

    action.state = ActionState.COMPLETED.value
    action.completed_at = now
    if action.agent_id:
        crud.increment_agent_counter(db, action.agent_id, "completed_actions", 1)
        if was_in_progress:
            crud.increment_agent_counter(db, action.agent_id, "in_progress_actions", -1)

    next_action = None
    next_time = next_occurrence(action, now)
    if next_time is not None:
        next_action = crud.create_action(
            db,
            action.user_id,
            commit=False,
            agent_id=action.agent_id,
            project_id=action.project_id,
            title=action.title,
            description=action.description,
            priority=action.priority,
            task_type=action.task_type,
            task_config=dict(action.task_config or {}),
            state=ActionState.SCHEDULED.value,
            schedule_time=next_time,
        )

    db.commit()
    db.refresh(action)
    if next_action is not None:
        db.refresh(next_action)
        logger.info("Spawned recurrence %s from %s at %s", next_action.id, action.id, next_time.isoformat())
    return CompletionOutcome(action=action, next_action=next_action)


def dismiss_action(db: Session, action: models.Action, reason: Optional[str], now: Optional[datetime] = None) -> models.Action:
    if not reason or not reason.strip():
        raise LifecycleError("Dismissal reason is required")
    _ensure_not_terminal(action, "dismiss")
    was_in_progress = action.state == ActionState.IN_PROGRESS.value

    action.state = ActionState.DISMISSED.value
    action.dismissed_at = now or utcnow()
    action.dismissed_reason = reason.strip()
    if action.agent_id and was_in_progress:
        crud.increment_agent_counter(db, action.agent_id, "in_progress_actions", -1)
    db.commit()
    db.refresh(action)
    return action


# ============ Recurrence ============

def recurrence_time(action: models.Action, fallback: Optional[datetime] = None) -> Optional[time]:
    """Time of day for the next occurrence, or None when the action does not recur daily."""
    recurrence = (action.task_config or {}).get("recurrence")
    if not isinstance(recurrence, dict) or recurrence.get("type") != "daily":
        return None
    explicit = parse_time_of_day(recurrence.get("time"))
    if explicit is not None:
        return explicit
    scheduled = _as_utc(action.schedule_time)
    if scheduled is not None:
        return scheduled.time().replace(microsecond=0)
    fallback = _as_utc(fallback) or utcnow()
    return fallback.time().replace(second=0, microsecond=0)


def next_occurrence(action: models.Action, completed_at: datetime) -> Optional[datetime]:
    at = recurrence_time(action, fallback=completed_at)
    if at is None:
        return None
    anchor = _as_utc(completed_at).date()
    scheduled = _as_utc(action.schedule_time)
    # Completing early must not land on the slot that was just done.
    if scheduled is not None and scheduled.date() > anchor:
        anchor = scheduled.date()
    return datetime.combine(anchor + timedelta(days=1), at, tzinfo=timezone.utc)


# ============ Measurements ============

def record_measurement(
    db: Session,
    user_id: str,
    agent: models.Agent,
    action: Optional[models.Action],
    payload: MeasurementPayload,
) -> models.Measurement:
    return crud.create_measurement(
        db,
        user_id=user_id,
        agent_id=agent.id,
        action_id=action.id if action is not None else None,
        dimensions=[
            {"name": d.name, "score": d.score, "notes": d.notes or None}
            for d in payload.dimensions
        ],
        notes=payload.notes or None,
    )
