"""
Agent chat: one orchestrated turn per request.

POST /api/agent-chat
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..auth import get_current_user
from ..config import settings
from ..database import get_db, get_session_factory
from ..errors import LLMProviderError, SignalParseError
from ..llm.capabilities import Capabilities, get_capabilities
from ..llm.client import LLMService, get_llm_service
from ..llm.orchestrator import ChatOrchestrator
from ..llm.prompts import ReviewContext
from ..llm.tracker import InvocationTracker, flush_tracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agent-chat", tags=["Agent Chat"])

SIGNAL_FAILURE_DETAIL = "Failed to generate a response. Please try again."

PROVIDER_STATUS = {
    LLMProviderError.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    LLMProviderError.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    LLMProviderError.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_orchestrator(
    llm: LLMService = Depends(get_llm_service),
    capabilities: Capabilities = Depends(get_capabilities),
) -> ChatOrchestrator:
    return ChatOrchestrator(llm, capabilities, history_window=settings.chat_history_window)


def provider_http_error(e: LLMProviderError) -> HTTPException:
    return HTTPException(status_code=PROVIDER_STATUS.get(e.kind, status.HTTP_502_BAD_GATEWAY), detail=e.user_message)


def turn_failed(e: Exception, tracker: InvocationTracker, session_factory) -> HTTPException:
    """Record the failure, flush telemetry inline and map the error to an HTTP response."""
    tracker.error(e)
    flush_tracker(tracker, session_factory)
    if isinstance(e, LLMProviderError):
        return provider_http_error(e)
    logger.error("[%s] Signal parse failed (%s): %s | raw=%.500s", tracker.source, e.kind, e, e.raw or "")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=SIGNAL_FAILURE_DETAIL)


def _owned_action(db: Session, action_id: str, user_id: str) -> models.Action:
    action = crud.get_action(db, action_id)
    if action is None or action.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Action not found")
    return action


@router.post("", response_model=schemas.AgentChatResponse)
def agent_chat(
    payload: schemas.AgentChatRequest,
    background_tasks: BackgroundTasks,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """
    Run one chat turn with an agent.

    - **action_id**: discuss (or run a check-in for) a specific action
    - **review_action_id**: review the agent's pending drafts
    """
    agent = crud.get_owned_agent(db, payload.agent_id, current_user.id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")

    action_context: Optional[models.Action] = None
    if payload.action_id:
        action_context = _owned_action(db, payload.action_id, current_user.id)

    review_context: Optional[ReviewContext] = None
    if payload.review_action_id:
        review_action = _owned_action(db, payload.review_action_id, current_user.id)
        draft_type = (review_action.task_config or {}).get("draftType")
        pending = crud.list_drafts(db, agent.id, current_user.id, status="pending", type=draft_type)
        review_context = ReviewContext(action=review_action, pending_drafts=pending)

    context_action = action_context or (review_context.action if review_context else None)
    tracker = InvocationTracker(
        user_id=current_user.id,
        agent_id=agent.id,
        action_id=context_action.id if context_action else None,
        source="agent-chat",
    )
    tracker.context("request", {
        "message_length": len(payload.message),
        "history_length": len(payload.chat_history),
    })

    try:
        turn = orchestrator.run_turn(
            db,
            current_user.id,
            agent,
            payload.message,
            tracker,
            chat_history=[m.model_dump() for m in payload.chat_history],
            action_context=action_context,
            review_context=review_context,
        )
    except (LLMProviderError, SignalParseError) as e:
        db.rollback()
        raise turn_failed(e, tracker, session_factory)

    background_tasks.add_task(flush_tracker, tracker, session_factory)
    return schemas.AgentChatResponse(
        response=turn.reply,
        signal=turn.signal.as_dict() if turn.signal else None,
        draft=turn.draft,
        measurement=schemas.Measurement.model_validate(turn.measurement) if turn.measurement else None,
        usage=turn.usage,
    )
