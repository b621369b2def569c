"""
Onboarding chat that gathers a new agent's goal.

POST /api/setup-chat
"""
from fastapi import APIRouter, BackgroundTasks, Depends

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_session_factory
from ..errors import LLMProviderError, SignalParseError
from ..llm.orchestrator import ChatOrchestrator
from ..llm.tracker import InvocationTracker, flush_tracker
from .agent_chat import get_orchestrator, turn_failed

router = APIRouter(prefix="/api/setup-chat", tags=["Setup Chat"])


@router.post("", response_model=schemas.SetupChatResponse)
def setup_chat(
    payload: schemas.SetupChatRequest,
    background_tasks: BackgroundTasks,
    current_user: models.User = Depends(get_current_user),
    session_factory=Depends(get_session_factory),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    tracker = InvocationTracker(user_id=current_user.id, source="setup-chat")
    try:
        turn = orchestrator.run_setup_turn(
            payload.message,
            tracker,
            chat_history=[m.model_dump() for m in payload.chat_history],
        )
    except (LLMProviderError, SignalParseError) as e:
        raise turn_failed(e, tracker, session_factory)

    background_tasks.add_task(flush_tracker, tracker, session_factory)
    if turn.signal is None:
        return schemas.SetupChatResponse(ready=False, response=turn.reply)

    goal = turn.signal.payload
    return schemas.SetupChatResponse(
        ready=True,
        response=turn.reply,
        agent_data=schemas.SetupAgentData(
            name=goal.title,
            goal=goal.goal,
            success_criteria=goal.success_criteria,
            timeline=goal.timeline,
        ),
    )
