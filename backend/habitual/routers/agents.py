"""
Agent routes: create from setup data, list, inspect, update, and per-agent records.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..auth import get_current_user
from ..config import settings
from ..database import get_db

router = APIRouter(prefix="/api/agents", tags=["Agents"])


def _get_agent_or_404(db: Session, agent_id: str, user: models.User) -> models.Agent:
    agent = crud.get_owned_agent(db, agent_id, user.id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    return agent


@router.post("", response_model=schemas.Agent, status_code=status.HTTP_201_CREATED)
def create_agent(
    agent: schemas.AgentCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create an agent; metrics start at zero."""
    return crud.create_agent(
        db,
        current_user.id,
        name=agent.name.strip(),
        goal=agent.goal,
        success_criteria=agent.success_criteria,
        timeline=agent.timeline,
        type=agent.type,
        overview=agent.overview,
        capabilities=agent.capabilities,
        local_data_path=agent.local_data_path,
    )


@router.get("", response_model=List[schemas.Agent])
def list_agents(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return crud.list_agents(db, current_user.id)


@router.get("/{agent_id}", response_model=schemas.Agent)
def get_agent(
    agent_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_agent_or_404(db, agent_id, current_user)


@router.patch("/{agent_id}", response_model=schemas.Agent)
def update_agent(
    agent_id: str,
    updates: schemas.AgentUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    agent = _get_agent_or_404(db, agent_id, current_user)
    for key, value in updates.model_dump(exclude_unset=True).items():
        if key == "capabilities" and value is not None:
            value = {**(agent.capabilities or {}), **value}
        setattr(agent, key, value)
    db.commit()
    db.refresh(agent)
    return agent


@router.get("/{agent_id}/notes", response_model=List[schemas.Note])
def list_agent_notes(
    agent_id: str,
    note_status: Optional[str] = Query(None, alias="status"),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    agent = _get_agent_or_404(db, agent_id, current_user)
    return crud.list_notes(db, agent.id, current_user.id, status=note_status, limit=limit)


@router.get("/{agent_id}/measurements", response_model=List[schemas.Measurement])
def list_agent_measurements(
    agent_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    agent = _get_agent_or_404(db, agent_id, current_user)
    return crud.list_measurements(db, agent.id, current_user.id)


@router.get("/{agent_id}/logs", response_model=List[schemas.AgentLog])
def list_agent_logs(
    agent_id: str,
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    agent = _get_agent_or_404(db, agent_id, current_user)
    return crud.list_logs(db, agent.id, current_user.id, limit=limit)
