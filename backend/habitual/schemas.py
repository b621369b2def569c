"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime


# ============ Chat Schemas ============

class ChatMessage(BaseModel):
    role: str = Field(..., pattern=r"^(user|assistant)$")
    content: str


class AgentChatRequest(BaseModel):
    """One agent chat turn."""
    agent_id: str = Field(..., min_length=1)
    message: str = Field(..., max_length=20000)
    chat_history: List[ChatMessage] = Field(default_factory=list)
    action_id: Optional[str] = None
    review_action_id: Optional[str] = None

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message cannot be empty")
        return v


class ActionDraft(BaseModel):
    """Unpersisted action proposal returned by a chat turn."""
    state: Literal["draft"] = "draft"
    agentId: str
    title: str
    description: str
    priority: str = "medium"
    taskType: str
    taskConfig: Dict[str, Any] = Field(default_factory=dict)
    type: Optional[str] = None
    content: Optional[str] = None


class SignalOut(BaseModel):
    type: str
    data: Dict[str, Any]


class TurnUsage(BaseModel):
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0
    total_duration_ms: int = 0
    tools_used: List[str] = Field(default_factory=list)
    signal_emitted: Optional[str] = None


class Measurement(BaseModel):
    id: str
    agent_id: str
    action_id: Optional[str] = None
    timestamp: datetime
    dimensions: List[Dict[str, Any]]
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AgentChatResponse(BaseModel):
    success: bool = True
    response: str
    signal: Optional[SignalOut] = None
    draft: Optional[ActionDraft] = None
    measurement: Optional[Measurement] = None
    usage: TurnUsage


class SetupChatRequest(BaseModel):
    message: str = Field(..., max_length=20000)
    chat_history: List[ChatMessage] = Field(default_factory=list)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message cannot be empty")
        return v


class SetupAgentData(BaseModel):
    name: str
    goal: str
    success_criteria: List[str]
    timeline: str
    type: str = "northstar"


class SetupChatResponse(BaseModel):
    ready: bool
    response: str
    agent_data: Optional[SetupAgentData] = None


# ============ Agent Schemas ============

class AgentCreate(BaseModel):
    """Create an agent from completed setup data."""
    name: str = Field(..., min_length=1, max_length=200)
    goal: str = Field(..., min_length=1)
    success_criteria: List[str] = Field(default_factory=list)
    timeline: Optional[str] = Field(None, max_length=200)
    type: str = Field("northstar", max_length=20)
    overview: Optional[str] = None
    capabilities: Dict[str, bool] = Field(default_factory=dict)
    local_data_path: Optional[str] = Field(None, max_length=200)


class AgentUpdate(BaseModel):
    """Schema for agent updates (all fields optional)."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[Literal["active", "paused", "completed", "archived"]] = None
    overview: Optional[str] = None
    capabilities: Optional[Dict[str, bool]] = None
    local_data_path: Optional[str] = Field(None, max_length=200)


class Agent(BaseModel):
    id: str
    type: str
    name: str
    status: str
    goal: Optional[str] = None
    success_criteria: List[str] = Field(default_factory=list)
    timeline: Optional[str] = None
    overview: Optional[str] = None
    capabilities: Dict[str, Any] = Field(default_factory=dict)
    local_data_path: Optional[str] = None
    total_actions: int = 0
    completed_actions: int = 0
    in_progress_actions: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    last_run_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Note(BaseModel):
    id: str
    type: str
    title: str
    content: str
    note_metadata: Dict[str, Any] = Field(default_factory=dict, serialization_alias="metadata")
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AgentLog(BaseModel):
    id: str
    source: str
    action_id: Optional[str] = None
    events: List[Dict[str, Any]] = Field(default_factory=list)
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0
    total_duration_ms: int = 0
    tools_used: List[str] = Field(default_factory=list)
    signal_emitted: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ============ Action Schemas ============

Priority = Literal["low", "medium", "high"]
TaskType = Literal["interactive", "scheduled", "measurement", "manual"]


class ActionDefine(BaseModel):
    """Persist a draft returned by a chat turn."""
    agent_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    priority: Priority = "medium"
    task_type: TaskType = Field("scheduled", validation_alias="taskType")
    task_config: Dict[str, Any] = Field(default_factory=dict, validation_alias="taskConfig")
    type: Optional[Literal["markdown", "code", "text", "prompt"]] = None
    content: Optional[str] = None
    schedule_time: Optional[datetime] = None
    project_id: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class ActionUpdate(BaseModel):
    """Metadata changes; state only moves through the lifecycle endpoints."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    task_config: Optional[Dict[str, Any]] = Field(None, validation_alias="taskConfig")

    model_config = ConfigDict(populate_by_name=True)


class ActionSchedule(BaseModel):
    schedule_time: datetime


class ActionDismiss(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class Action(BaseModel):
    id: str
    agent_id: Optional[str] = None
    project_id: Optional[str] = None
    title: str
    description: Optional[str] = ""
    priority: str
    task_type: str
    state: str
    task_config: Dict[str, Any] = Field(default_factory=dict)
    schedule_time: Optional[datetime] = None
    type: Optional[str] = None
    content: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None
    dismissed_reason: Optional[str] = None
    total_tokens: int = 0
    total_cost: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ActionCompleteResponse(BaseModel):
    action: Action
    next_action: Optional[Action] = None
