"""Pytest configuration and fixtures."""
from __future__ import annotations

import copy
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from habitual import crud, models
from habitual.auth import create_access_token
from habitual.database import Base, get_db, get_session_factory
from habitual.ids import generate_user_id
from habitual.llm.capabilities import Capabilities, get_capabilities
from habitual.llm.client import Completion, ToolCall, Usage, get_llm_service
from habitual.llm.tracker import InvocationTracker
from habitual.main import app


def text_completion(text, input_tokens=100, output_tokens=20, model="gpt-4o"):
    return Completion(
        text=text,
        usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
        model=model,
        stop_reason="stop",
        duration_ms=5,
    )


def tool_completion(*calls, text="", input_tokens=120, output_tokens=30, model="gpt-4o"):
    return Completion(
        text=text,
        tool_calls=[ToolCall(id=f"call_{i}", name=name, input=args) for i, (name, args) in enumerate(calls)],
        usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
        model=model,
        stop_reason="tool_calls",
        duration_ms=7,
    )


class FakeLLM:
    """Scripted stand-in for the hosted model; records every request."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def script(self, *replies):
        self.replies.extend(replies)

    def complete(self, messages, tools=None, system_blocks=None):
        self.calls.append({
            "messages": copy.deepcopy(messages),
            "tools": tools,
            "system_blocks": list(system_blocks or []),
        })
        if not self.replies:
            raise AssertionError("FakeLLM ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def _make_user(db, name):
    user = models.User(id=generate_user_id(), name=name, email=f"{name}@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db):
    return _make_user(db, "alice")


@pytest.fixture
def other_user(db):
    return _make_user(db, "mallory")


@pytest.fixture
def agent(db, user):
    return crud.create_agent(
        db,
        user.id,
        name="LinkedIn Presence",
        goal="Grow a professional audience on LinkedIn",
        success_criteria=["1000 followers", "Weekly posting cadence"],
        timeline="6 months",
        capabilities={"notes": True},
    )


@pytest.fixture
def make_action(db):
    def _make(owner, agent=None, **fields):
        fields.setdefault("title", "Draft weekly post")
        fields.setdefault("description", "Write this week's post")
        fields.setdefault("priority", "medium")
        fields.setdefault("task_type", "scheduled")
        fields.setdefault("state", "open")
        return crud.create_action(db, owner.id, agent_id=agent.id if agent else None, **fields)
    return _make


@pytest.fixture
def tracker(user, agent):
    return InvocationTracker(user_id=user.id, agent_id=agent.id, source="test")


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def capabilities():
    return Capabilities()


@pytest.fixture
def client(session_factory, llm, capabilities):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_llm_service] = lambda: llm
    app.dependency_overrides[get_capabilities] = lambda: capabilities
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
