"""
SQLAlchemy models for the Habitual agents database tables.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, Float, ForeignKey, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """User model matching the 'users' table."""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)  # u-…
    name = Column(String(50), nullable=False)
    email = Column(String(100), unique=True)  # optional
    timezone = Column(String(50), default="UTC")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    agents = relationship("Agent", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, name={self.name})>"


class Agent(Base):
    """Goal-bearing conversational agent owned by a user."""
    __tablename__ = "agents"

    id = Column(String(64), primary_key=True, index=True)  # agent-…
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), default="northstar")  # northstar, custom
    name = Column(String(200), nullable=False)
    status = Column(String(20), default="active")  # active, paused, completed, archived
    goal = Column(Text)
    success_criteria = Column(JSON, default=list)
    timeline = Column(String(200))
    overview = Column(Text)  # long-lived reference documentation for the prompt
    capabilities = Column(JSON, default=dict)  # {"filesystem": bool, "notes": bool}
    local_data_path = Column(String(200))

    # Aggregate metrics
    total_actions = Column(Integer, default=0, nullable=False)
    completed_actions = Column(Integer, default=0, nullable=False)
    in_progress_actions = Column(Integer, default=0, nullable=False)
    total_tokens = Column(Integer, default=0, nullable=False)
    total_cost = Column(Float, default=0.0, nullable=False)
    last_run_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="agents")

    def has_capability(self, name: str, default: bool = False) -> bool:
        return bool((self.capabilities or {}).get(name, default))

    def __repr__(self):
        return f"<Agent(id={self.id}, name={self.name})>"


class Action(Base):
    """Unit of work or deliverable with a lifecycle state."""
    __tablename__ = "actions"

    id = Column(String(64), primary_key=True, index=True)  # action-…
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(String(64), ForeignKey("agents.id", ondelete="SET NULL"), index=True)
    project_id = Column(String(64))
    title = Column(String(200), nullable=False)
    description = Column(Text, default="")
    priority = Column(String(10), default="medium")  # low, medium, high
    task_type = Column(String(20), default="interactive")  # interactive, scheduled, measurement, manual
    state = Column(String(20), default="open", index=True)  # open, scheduled, in_progress, completed, dismissed
    task_config = Column(JSON, default=dict)
    schedule_time = Column(DateTime(timezone=True))
    type = Column(String(20))  # asset type for manual actions: markdown, code, text, prompt
    content = Column(Text)

    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    dismissed_at = Column(DateTime(timezone=True))
    dismissed_reason = Column(Text)
    error_message = Column(Text)

    # API usage attributed to this action
    total_tokens = Column(Integer, default=0, nullable=False)
    total_cost = Column(Float, default=0.0, nullable=False)
    api_calls = Column(JSON, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Action(id={self.id}, state={self.state}, title={self.title})>"


class AgentNote(Base):
    """Quick-capture note attached to an agent."""
    __tablename__ = "agent_notes"

    id = Column(String(64), primary_key=True, index=True)  # note-…
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(String(64), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # freeform: url, idea, bookmark, reference
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    note_metadata = Column("metadata", JSON, default=dict)
    status = Column(String(20), default="active")  # active, archived, merged
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<AgentNote(id={self.id}, title={self.title})>"


class AgentDraft(Base):
    """Content recommendation produced by an agent, awaiting user review."""
    __tablename__ = "agent_drafts"

    id = Column(String(64), primary_key=True, index=True)  # draft-…
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(String(64), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # e.g. company, article
    status = Column(String(20), default="pending")  # pending, reviewed, committed
    data = Column(JSON, default=dict)
    review = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<AgentDraft(id={self.id}, status={self.status})>"


class Measurement(Base):
    """Dimensional check-in recorded from a measurement conversation."""
    __tablename__ = "measurements"

    id = Column(String(64), primary_key=True, index=True)  # m-…
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(String(64), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True)
    action_id = Column(String(64), ForeignKey("actions.id", ondelete="SET NULL"), index=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow)
    dimensions = Column(JSON, nullable=False)  # [{name, score, notes}]
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<Measurement(id={self.id}, action_id={self.action_id})>"


class AgentLog(Base):
    """One record per agent invocation: events plus derived totals."""
    __tablename__ = "agent_logs"

    id = Column(String(64), primary_key=True, index=True)  # alog-…
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(String(64), index=True)
    action_id = Column(String(64))
    source = Column(String(50), default="unknown")  # agent-chat, setup-chat
    events = Column(JSON, default=list)
    total_input_tokens = Column(Integer, default=0)
    total_output_tokens = Column(Integer, default=0)
    total_cost_usd = Column(Float, default=0.0)
    total_duration_ms = Column(Integer, default=0)
    tools_used = Column(JSON, default=list)
    signal_emitted = Column(String(50))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<AgentLog(id={self.id}, source={self.source})>"
