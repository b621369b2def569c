"""
Data access layer: create/get/list/patch helpers per table.

Ownership is NOT enforced here; callers compare ``user_id`` themselves so that
routers can answer 404 and tool handlers can answer ``{"error": ...}``.
"""
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from . import models
from .ids import (
    generate_action_id,
    generate_agent_id,
    generate_log_id,
    generate_measurement_id,
    generate_note_id,
)
from .models import utcnow

OPEN_STATES = ("open", "scheduled", "in_progress")
AGENT_COUNTERS = ("total_actions", "completed_actions", "in_progress_actions")


# ============ Agents ============

def create_agent(db: Session, user_id: str, **fields) -> models.Agent:
    agent = models.Agent(id=generate_agent_id(), user_id=user_id, **fields)
    db.add(agent)
    db.commit()
    db.refresh(agent)
    return agent


def get_agent(db: Session, agent_id: str) -> Optional[models.Agent]:
    return db.get(models.Agent, agent_id)


def get_owned_agent(db: Session, agent_id: str, user_id: str) -> Optional[models.Agent]:
    agent = get_agent(db, agent_id)
    if agent is None or agent.user_id != user_id:
        return None
    return agent


def list_agents(db: Session, user_id: str) -> List[models.Agent]:
    return (
        db.query(models.Agent)
        .filter(models.Agent.user_id == user_id)
        .order_by(models.Agent.updated_at.desc())
        .all()
    )


def increment_agent_counter(db: Session, agent_id: str, field: str, value: int = 1) -> None:
    if field not in AGENT_COUNTERS:
        raise ValueError(f"Unknown agent counter: {field}")
    column = getattr(models.Agent, field)
    db.query(models.Agent).filter(models.Agent.id == agent_id).update(
        {column: column + value}, synchronize_session="fetch"
    )


def increment_agent_metrics(db: Session, agent_id: str, tokens: int = 0, cost: float = 0.0) -> None:
    updates: Dict[Any, Any] = {models.Agent.last_run_at: utcnow()}
    if tokens > 0:
        updates[models.Agent.total_tokens] = models.Agent.total_tokens + tokens
    if cost > 0:
        updates[models.Agent.total_cost] = models.Agent.total_cost + cost
    db.query(models.Agent).filter(models.Agent.id == agent_id).update(
        updates, synchronize_session="fetch"
    )


# ============ Actions ============

def get_action(db: Session, action_id: str) -> Optional[models.Action]:
    return db.get(models.Action, action_id)


def list_actions(
    db: Session,
    user_id: str,
    agent_id: Optional[str] = None,
    states: Optional[Iterable[str]] = None,
    limit: Optional[int] = None,
) -> List[models.Action]:
    q = db.query(models.Action).filter(models.Action.user_id == user_id)
    if agent_id:
        q = q.filter(models.Action.agent_id == agent_id)
    if states:
        q = q.filter(models.Action.state.in_(list(states)))
    q = q.order_by(models.Action.created_at.asc(), models.Action.id.asc())
    if limit:
        q = q.limit(limit)
    return q.all()


def list_open_actions(db: Session, user_id: str, agent_id: str) -> List[models.Action]:
    return list_actions(db, user_id, agent_id=agent_id, states=OPEN_STATES)


def create_action(db: Session, user_id: str, commit: bool = True, **fields) -> models.Action:
    """Insert an action and bump the owning agent's ``total_actions``."""
    fields.setdefault("task_config", {})
    action = models.Action(id=generate_action_id(), user_id=user_id, api_calls=[], **fields)
    db.add(action)
    db.flush()
    if action.agent_id:
        increment_agent_counter(db, action.agent_id, "total_actions", 1)
    if commit:
        db.commit()
        db.refresh(action)
    return action


def update_action(db: Session, action: models.Action, updates: Dict[str, Any], commit: bool = True) -> models.Action:
    for key, value in updates.items():
        setattr(action, key, value)
    if commit:
        db.commit()
        db.refresh(action)
    return action


def record_action_usage(db: Session, action: models.Action, call: Dict[str, Any]) -> None:
    tokens = int(call.get("input_tokens", 0)) + int(call.get("output_tokens", 0))
    action.api_calls = list(action.api_calls or []) + [call]
    action.total_tokens = (action.total_tokens or 0) + tokens
    action.total_cost = (action.total_cost or 0.0) + float(call.get("cost_usd", 0.0))


# ============ Notes ============

def create_note(db: Session, user_id: str, agent_id: str, type: str, title: str, content: str,
                metadata: Optional[Dict[str, Any]] = None, status: str = "active") -> models.AgentNote:
    note = models.AgentNote(
        id=generate_note_id(),
        user_id=user_id,
        agent_id=agent_id,
        type=type,
        title=title,
        content=content,
        note_metadata=metadata or {},
        status=status,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


def get_note(db: Session, note_id: str) -> Optional[models.AgentNote]:
    return db.get(models.AgentNote, note_id)


def list_notes(db: Session, agent_id: str, user_id: str, status: Optional[str] = None,
               type: Optional[str] = None, limit: int = 20) -> List[models.AgentNote]:
    q = db.query(models.AgentNote).filter(
        models.AgentNote.agent_id == agent_id,
        models.AgentNote.user_id == user_id,
    )
    if status:
        q = q.filter(models.AgentNote.status == status)
    if type:
        q = q.filter(models.AgentNote.type == type)
    return q.order_by(models.AgentNote.created_at.desc()).limit(limit).all()


NOTE_FIELDS = {"title": "title", "content": "content", "type": "type", "status": "status", "metadata": "note_metadata"}
NOTE_STATUSES = ("active", "archived", "merged")


def update_note(db: Session, note: models.AgentNote, updates: Dict[str, Any]) -> List[str]:
    """Apply whitelisted note updates; returns the names of the fields changed."""
    changed = []
    for key, attr in NOTE_FIELDS.items():
        if key not in updates or updates[key] is None:
            continue
        if key == "status" and updates[key] not in NOTE_STATUSES:
            continue
        setattr(note, attr, updates[key])
        changed.append(key)
    if changed:
        db.commit()
        db.refresh(note)
    return changed


# ============ Drafts ============

def get_draft(db: Session, draft_id: str) -> Optional[models.AgentDraft]:
    return db.get(models.AgentDraft, draft_id)


def list_drafts(db: Session, agent_id: str, user_id: str, status: Optional[str] = None,
                type: Optional[str] = None) -> List[models.AgentDraft]:
    q = db.query(models.AgentDraft).filter(
        models.AgentDraft.agent_id == agent_id,
        models.AgentDraft.user_id == user_id,
    )
    if status:
        q = q.filter(models.AgentDraft.status == status)
    if type:
        q = q.filter(models.AgentDraft.type == type)
    return q.order_by(models.AgentDraft.created_at.asc(), models.AgentDraft.id.asc()).all()


def update_draft(db: Session, draft: models.AgentDraft, updates: Dict[str, Any]) -> models.AgentDraft:
    for key in ("status", "data", "review"):
        if key in updates:
            setattr(draft, key, updates[key])
    db.commit()
    db.refresh(draft)
    return draft


# ============ Measurements ============

def create_measurement(db: Session, user_id: str, agent_id: str, action_id: Optional[str],
                       dimensions: List[Dict[str, Any]], notes: Optional[str] = None,
                       commit: bool = True) -> models.Measurement:
    measurement = models.Measurement(
        id=generate_measurement_id(),
        user_id=user_id,
        agent_id=agent_id,
        action_id=action_id,
        timestamp=utcnow(),
        dimensions=dimensions,
        notes=notes,
    )
    db.add(measurement)
    if commit:
        db.commit()
        db.refresh(measurement)
    return measurement


def list_measurements(db: Session, agent_id: str, user_id: str) -> List[models.Measurement]:
    return (
        db.query(models.Measurement)
        .filter(models.Measurement.agent_id == agent_id, models.Measurement.user_id == user_id)
        .order_by(models.Measurement.timestamp.desc())
        .all()
    )


# ============ Invocation logs ============

def create_log(db: Session, **fields) -> models.AgentLog:
    log = models.AgentLog(id=generate_log_id(), **fields)
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def list_logs(db: Session, agent_id: str, user_id: str, limit: int = 20) -> List[models.AgentLog]:
    return (
        db.query(models.AgentLog)
        .filter(models.AgentLog.agent_id == agent_id, models.AgentLog.user_id == user_id)
        .order_by(models.AgentLog.created_at.desc())
        .limit(limit)
        .all()
    )
