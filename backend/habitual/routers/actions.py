"""
Action routes: define drafts and move actions through their lifecycle.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import crud, lifecycle, models, schemas
from ..auth import get_current_user
from ..database import get_db
from ..errors import LifecycleError

router = APIRouter(prefix="/api/actions", tags=["Actions"])


def _get_action_or_404(db: Session, action_id: str, user: models.User) -> models.Action:
    action = crud.get_action(db, action_id)
    if action is None or action.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Action not found")
    return action


def _conflict(e: LifecycleError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/define", response_model=schemas.Action, status_code=status.HTTP_201_CREATED)
def define_action(
    draft: schemas.ActionDefine,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Persist a draft returned by a chat turn.

    - lands in **open**, or **scheduled** when `schedule_time` is given
    """
    agent = crud.get_owned_agent(db, draft.agent_id, current_user.id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    if draft.task_type == "manual" and draft.type and not draft.content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Asset content is required")
    return lifecycle.define_action(
        db,
        current_user.id,
        agent,
        title=draft.title,
        description=draft.description,
        priority=draft.priority,
        task_type=draft.task_type,
        task_config=draft.task_config,
        type=draft.type,
        content=draft.content,
        schedule_time=draft.schedule_time,
        project_id=draft.project_id,
    )


@router.get("", response_model=List[schemas.Action])
def list_actions(
    agent_id: Optional[str] = Query(None),
    state: Optional[List[str]] = Query(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return crud.list_actions(db, current_user.id, agent_id=agent_id, states=state)


@router.get("/{action_id}", response_model=schemas.Action)
def get_action(
    action_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_action_or_404(db, action_id, current_user)


@router.patch("/{action_id}", response_model=schemas.Action)
def update_action(
    action_id: str,
    updates: schemas.ActionUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    action = _get_action_or_404(db, action_id, current_user)
    if action.state in lifecycle.TERMINAL_STATES:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Action is {action.state}")
    changes = updates.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    return crud.update_action(db, action, changes)


@router.post("/{action_id}/schedule", response_model=schemas.Action)
def schedule_action(
    action_id: str,
    body: schemas.ActionSchedule,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    action = _get_action_or_404(db, action_id, current_user)
    try:
        return lifecycle.schedule_action(db, action, body.schedule_time)
    except LifecycleError as e:
        raise _conflict(e)


@router.post("/{action_id}/start", response_model=schemas.Action)
def start_action(
    action_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    action = _get_action_or_404(db, action_id, current_user)
    try:
        return lifecycle.start_action(db, action)
    except LifecycleError as e:
        raise _conflict(e)


@router.post("/{action_id}/complete", response_model=schemas.ActionCompleteResponse)
def complete_action(
    action_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Complete an action; a daily-recurring action returns its next occurrence."""
    action = _get_action_or_404(db, action_id, current_user)
    try:
        outcome = lifecycle.complete_action(db, action)
    except LifecycleError as e:
        raise _conflict(e)
    return schemas.ActionCompleteResponse(
        action=schemas.Action.model_validate(outcome.action),
        next_action=schemas.Action.model_validate(outcome.next_action) if outcome.next_action else None,
    )


@router.post("/{action_id}/dismiss", response_model=schemas.Action)
def dismiss_action(
    action_id: str,
    body: schemas.ActionDismiss,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    action = _get_action_or_404(db, action_id, current_user)
    try:
        return lifecycle.dismiss_action(db, action, body.reason)
    except LifecycleError as e:
        raise _conflict(e)
