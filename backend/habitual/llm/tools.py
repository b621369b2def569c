from __future__ import annotations
from typing import Optional, Dict, Any
from datetime import datetime, time, timezone

from .. import models


def safe_float(val: Any) -> Optional[float]:
    try:
        if val is None:
            return None
        return float(val)
    except Exception:
        return None


def iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def parse_time_of_day(s: Any) -> Optional[time]:
    """Lenient time-of-day parsing: "09:00", "9am", "21:30:00"."""
    if not s or not isinstance(s, str):
        return None
    try:
        from dateutil import parser as _parser
        return _parser.parse(s).time().replace(microsecond=0)
    except (ValueError, OverflowError):
        return None


def action_summary(a: models.Action) -> Dict[str, Any]:
    """Open-actions prompt snapshot. User-visible fields only, so the cached block stays stable across turns."""
    return {
        "id": a.id,
        "title": a.title,
        "description": a.description,
        "priority": a.priority,
        "state": a.state,
        "taskType": a.task_type,
    }


def action_details(a: models.Action) -> Dict[str, Any]:
    return {
        "id": a.id,
        "title": a.title,
        "description": a.description,
        "state": a.state,
        "priority": a.priority,
        "taskType": a.task_type,
        "taskConfig": a.task_config or {},
        "content": a.content,
        "type": a.type,
        "scheduleTime": iso(a.schedule_time),
        "createdAt": iso(a.created_at),
        "updatedAt": iso(a.updated_at),
    }


def note_details(n: models.AgentNote) -> Dict[str, Any]:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "content": n.content,
        "metadata": n.note_metadata or {},
        "status": n.status,
        "createdAt": iso(n.created_at),
    }


def draft_details(d: models.AgentDraft) -> Dict[str, Any]:
    return {"id": d.id, "type": d.type, "status": d.status, "data": d.data or {}}
