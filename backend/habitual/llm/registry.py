"""
Tool handler registry.

Every :class:`ToolName` must be served by exactly one toolset; the registry
refuses to construct otherwise. :meth:`ToolRegistry.execute` never raises:
expected failures and unexpected exceptions both come back as
``{"error": message}`` so the model can recover conversationally.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .. import models
from ..errors import ToolError
from .capabilities import Capabilities
from .client import ToolCall
from .toolsets import (
    ActionToolset,
    BaseToolset,
    FilesystemToolset,
    Handler,
    NoteToolset,
    ReviewToolset,
    ToolName,
)

logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(
        self,
        db: Session,
        user_id: str,
        agent: models.Agent,
        capabilities: Optional[Capabilities] = None,
        toolsets: Optional[List[BaseToolset]] = None,
    ):
        self.db = db
        self.user_id = user_id
        self.agent = agent
        self.capabilities = capabilities or Capabilities()
        self.toolsets = toolsets if toolsets is not None else [
            ActionToolset(db, user_id, agent),
            NoteToolset(db, user_id, agent),
            FilesystemToolset(agent, self.capabilities),
            ReviewToolset(db, user_id, agent),
        ]
        self._handlers: Dict[ToolName, Handler] = {}
        for toolset in self.toolsets:
            for name, handler in toolset.handlers().items():
                if name in self._handlers:
                    raise ValueError(f"Tool {name.value} registered by more than one toolset")
                self._handlers[name] = handler
        missing = [t.value for t in ToolName if t not in self._handlers]
        if missing:
            raise ValueError(f"No handler registered for tools: {', '.join(missing)}")

    def execute(self, call: ToolCall) -> Dict[str, Any]:
        try:
            name = ToolName(call.name)
        except ValueError:
            logger.warning("Model requested unknown tool %s", call.name)
            return {"error": f"Unknown tool: {call.name}"}

        args = call.input if isinstance(call.input, dict) else {}
        try:
            result = self._handlers[name](args)
        except ToolError as e:
            logger.info("Tool %s for user %s returned error: %s", name.value, self.user_id, e)
            return {"error": str(e)}
        except Exception as e:
            logger.exception("Tool %s failed for user %s", name.value, self.user_id)
            self.db.rollback()
            return {"error": f"{name.value} failed: {e}"}

        logger.info("Executed tool %s for agent %s", name.value, self.agent.id)
        return result
