"""
Tool schemas and handlers, grouped by concern.

Each toolset owns the schemas it advertises and the handlers that serve them.
Handlers raise :class:`ToolError` for expected failures; the registry turns
those into ``{"error": ...}`` results for the model.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List

from sqlalchemy.orm import Session

from .. import crud, lifecycle, models
from ..errors import LifecycleError, ToolError
from ..ids import has_prefix
from ..models import utcnow
from . import filesystem
from .capabilities import Capabilities
from .tools import action_details, draft_details, iso, note_details, safe_float


class ToolName(str, Enum):
    GET_ACTION_DETAILS = "get_action_details"
    UPDATE_ACTION = "update_action"
    COMPLETE_ACTION = "complete_action"
    CREATE_NOTE = "create_note"
    GET_NOTES = "get_notes"
    UPDATE_NOTE = "update_note"
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    LIST_FILES = "list_files"
    GET_PENDING_DRAFTS = "get_pending_drafts"
    SUBMIT_DRAFT_REVIEW = "submit_draft_review"


Handler = Callable[[Dict[str, Any]], Dict[str, Any]]


def _schema(name: ToolName, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "name": name.value,
        "description": description,
        "input_schema": {"type": "object", "properties": properties, "required": required},
    }


class BaseToolset:
    name: str = "toolset"
    SCHEMAS: Dict[ToolName, Dict[str, Any]] = {}

    @classmethod
    def tools(cls) -> List[Dict[str, Any]]:
        return list(cls.SCHEMAS.values())

    def handlers(self) -> Dict[ToolName, Handler]:
        return {}


class ActionToolset(BaseToolset):
    name = "actions"
    UPDATABLE = {"title": "title", "description": "description", "priority": "priority", "taskConfig": "task_config"}
    SCHEMAS = {
        ToolName.GET_ACTION_DETAILS: _schema(
            ToolName.GET_ACTION_DETAILS,
            "Get full details of an action by ID, including its task configuration and content.",
            {"action_id": {"type": "string", "description": "The action ID (action-...)"}},
            ["action_id"],
        ),
        ToolName.UPDATE_ACTION: _schema(
            ToolName.UPDATE_ACTION,
            "Update an action's title, description, priority or taskConfig.",
            {
                "action_id": {"type": "string", "description": "The action ID (action-...)"},
                "updates": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "priority": {"type": "string", "enum": ["low", "medium", "high"]},
                        "taskConfig": {"type": "object"},
                    },
                },
            },
            ["action_id", "updates"],
        ),
        ToolName.COMPLETE_ACTION: _schema(
            ToolName.COMPLETE_ACTION,
            "Mark an action as completed. Only do this when the user confirms the work is done.",
            {"action_id": {"type": "string", "description": "The action ID (action-...)"}},
            ["action_id"],
        ),
    }

    def __init__(self, db: Session, user_id: str, agent: models.Agent):
        self.db = db
        self.user_id = user_id
        self.agent = agent

    def handlers(self) -> Dict[ToolName, Handler]:
        return {
            ToolName.GET_ACTION_DETAILS: self.get_action_details,
            ToolName.UPDATE_ACTION: self.update_action,
            ToolName.COMPLETE_ACTION: self.complete_action,
        }

    def _owned_action(self, action_id: Any) -> models.Action:
        if not has_prefix(action_id, "action"):
            raise ToolError("Invalid action ID format")
        action = crud.get_action(self.db, action_id)
        if action is None:
            raise ToolError("Action not found")
        if action.user_id != self.user_id:
            raise ToolError("Access denied")
        return action

    def get_action_details(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return {"action": action_details(self._owned_action(args.get("action_id")))}

    def update_action(self, args: Dict[str, Any]) -> Dict[str, Any]:
        action = self._owned_action(args.get("action_id"))
        if action.state in lifecycle.TERMINAL_STATES:
            raise ToolError(f"Cannot update an action in state '{action.state}'")
        updates = args.get("updates")
        if not isinstance(updates, dict):
            raise ToolError("updates must be an object")

        changes: Dict[str, Any] = {}
        for key, attr in self.UPDATABLE.items():
            if key not in updates or updates[key] is None:
                continue
            value = updates[key]
            if key == "priority" and value not in ("low", "medium", "high"):
                raise ToolError("priority must be one of: low, medium, high")
            if key == "taskConfig" and not isinstance(value, dict):
                raise ToolError("taskConfig must be an object")
            if key == "title" and not str(value).strip():
                raise ToolError("title cannot be empty")
            changes[attr] = value
        if not changes:
            raise ToolError("No valid fields to update")

        crud.update_action(self.db, action, changes)
        return {
            "success": True,
            "updatedFields": [k for k, attr in self.UPDATABLE.items() if attr in changes],
            "action": action_details(action),
        }

    def complete_action(self, args: Dict[str, Any]) -> Dict[str, Any]:
        action = self._owned_action(args.get("action_id"))
        try:
            outcome = lifecycle.complete_action(self.db, action)
        except LifecycleError as e:
            raise ToolError(str(e)) from e
        result: Dict[str, Any] = {
            "success": True,
            "message": f"Action '{action.title}' marked as completed",
            "action": action_details(outcome.action),
        }
        if outcome.next_action is not None:
            result["nextAction"] = action_details(outcome.next_action)
        return result


class NoteToolset(BaseToolset):
    name = "notes"
    SCHEMAS = {
        ToolName.CREATE_NOTE: _schema(
            ToolName.CREATE_NOTE,
            "Save a quick note for this agent: an idea, link, bookmark or reference the user wants kept.",
            {
                "type": {"type": "string", "description": "Freeform category, e.g. url, idea, reference"},
                "title": {"type": "string"},
                "content": {"type": "string"},
                "metadata": {"type": "object"},
            },
            ["type", "title", "content"],
        ),
        ToolName.GET_NOTES: _schema(
            ToolName.GET_NOTES,
            "List this agent's notes, newest first.",
            {
                "status": {"type": "string", "enum": list(crud.NOTE_STATUSES)},
                "type": {"type": "string"},
                "limit": {"type": "integer", "minimum": 1, "maximum": 100},
            },
            [],
        ),
        ToolName.UPDATE_NOTE: _schema(
            ToolName.UPDATE_NOTE,
            "Update a note's title, content, type, status or metadata.",
            {
                "note_id": {"type": "string", "description": "The note ID (note-...)"},
                "updates": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "content": {"type": "string"},
                        "type": {"type": "string"},
                        "status": {"type": "string", "enum": list(crud.NOTE_STATUSES)},
                        "metadata": {"type": "object"},
                    },
                },
            },
            ["note_id", "updates"],
        ),
    }

    def __init__(self, db: Session, user_id: str, agent: models.Agent):
        self.db = db
        self.user_id = user_id
        self.agent = agent

    def handlers(self) -> Dict[ToolName, Handler]:
        return {
            ToolName.CREATE_NOTE: self.create_note,
            ToolName.GET_NOTES: self.get_notes,
            ToolName.UPDATE_NOTE: self.update_note,
        }

    def create_note(self, args: Dict[str, Any]) -> Dict[str, Any]:
        missing = [k for k in ("type", "title", "content") if not args.get(k)]
        if missing:
            raise ToolError(f"Missing required fields: {', '.join(missing)}")
        metadata = args.get("metadata")
        note = crud.create_note(
            self.db,
            self.user_id,
            self.agent.id,
            type=str(args["type"]),
            title=str(args["title"]),
            content=str(args["content"]),
            metadata=metadata if isinstance(metadata, dict) else None,
        )
        return {"success": True, "note": note_details(note)}

    def get_notes(self, args: Dict[str, Any]) -> Dict[str, Any]:
        limit = args.get("limit") or 20
        try:
            limit = max(1, min(int(limit), 100))
        except (TypeError, ValueError):
            limit = 20
        notes = crud.list_notes(
            self.db, self.agent.id, self.user_id,
            status=args.get("status"), type=args.get("type"), limit=limit,
        )
        return {"notes": [note_details(n) for n in notes], "count": len(notes)}

    def update_note(self, args: Dict[str, Any]) -> Dict[str, Any]:
        note_id = args.get("note_id")
        if not has_prefix(note_id, "note"):
            raise ToolError("Invalid note ID format")
        note = crud.get_note(self.db, note_id)
        if note is None:
            raise ToolError("Note not found")
        if note.user_id != self.user_id or note.agent_id != self.agent.id:
            raise ToolError("Access denied")
        updates = args.get("updates")
        if not isinstance(updates, dict):
            raise ToolError("updates must be an object")
        changed = crud.update_note(self.db, note, updates)
        if not changed:
            raise ToolError("No valid fields to update")
        return {"success": True, "updatedFields": changed, "note": note_details(note)}


class FilesystemToolset(BaseToolset):
    name = "filesystem"
    SCHEMAS = {
        ToolName.READ_FILE: _schema(
            ToolName.READ_FILE,
            "Read a text file from this agent's data directory.",
            {"path": {"type": "string", "description": "Path relative to the agent directory"}},
            ["path"],
        ),
        ToolName.WRITE_FILE: _schema(
            ToolName.WRITE_FILE,
            "Write a text file in this agent's data directory. Parent directories are created.",
            {
                "path": {"type": "string", "description": "Path relative to the agent directory"},
                "content": {"type": "string"},
                "mode": {"type": "string", "enum": ["overwrite", "append"]},
            },
            ["path", "content"],
        ),
        ToolName.LIST_FILES: _schema(
            ToolName.LIST_FILES,
            "List files and directories in this agent's data directory.",
            {"path": {"type": "string", "description": "Subdirectory, default is the agent root"}},
            [],
        ),
    }

    def __init__(self, agent: models.Agent, capabilities: Capabilities):
        self.agent = agent
        self.capabilities = capabilities

    def handlers(self) -> Dict[ToolName, Handler]:
        return {
            ToolName.READ_FILE: self.read_file,
            ToolName.WRITE_FILE: self.write_file,
            ToolName.LIST_FILES: self.list_files,
        }

    def _base(self):
        if not (self.capabilities.filesystem and self.agent.has_capability("filesystem")):
            raise ToolError("Filesystem access is not enabled for this agent")
        base = filesystem.agent_data_path(self.capabilities.data_root, self.agent.local_data_path)
        if base is None:
            raise ToolError("Agent has no local data path configured")
        return base

    def read_file(self, args: Dict[str, Any]) -> Dict[str, Any]:
        path = args.get("path")
        if not path or not isinstance(path, str):
            raise ToolError("path is required")
        return filesystem.read_file(self._base(), path)

    def write_file(self, args: Dict[str, Any]) -> Dict[str, Any]:
        path = args.get("path")
        content = args.get("content")
        if not path or not isinstance(path, str):
            raise ToolError("path is required")
        if not isinstance(content, str):
            raise ToolError("content must be a string")
        mode = args.get("mode") or "overwrite"
        if mode not in ("overwrite", "append"):
            raise ToolError("mode must be 'overwrite' or 'append'")
        return filesystem.write_file(self._base(), path, content, mode=mode)

    def list_files(self, args: Dict[str, Any]) -> Dict[str, Any]:
        path = args.get("path") or ""
        if not isinstance(path, str):
            raise ToolError("path must be a string")
        return filesystem.list_files(self._base(), path)


class ReviewToolset(BaseToolset):
    name = "review"
    ACCEPT_THRESHOLD = 5
    SCHEMAS = {
        ToolName.GET_PENDING_DRAFTS: _schema(
            ToolName.GET_PENDING_DRAFTS,
            "List this agent's drafts that are waiting for the user's review.",
            {"type": {"type": "string", "description": "Optional draft type filter"}},
            [],
        ),
        ToolName.SUBMIT_DRAFT_REVIEW: _schema(
            ToolName.SUBMIT_DRAFT_REVIEW,
            "Record the user's review of one draft: a 0-10 score and their feedback.",
            {
                "draftId": {"type": "string", "description": "The draft ID (draft-...)"},
                "score": {"type": "number", "minimum": 0, "maximum": 10},
                "feedback": {"type": "string"},
                "user_tags": {"type": "array", "items": {"type": "string"}},
            },
            ["draftId", "score", "feedback"],
        ),
    }

    def __init__(self, db: Session, user_id: str, agent: models.Agent):
        self.db = db
        self.user_id = user_id
        self.agent = agent

    def handlers(self) -> Dict[ToolName, Handler]:
        return {
            ToolName.GET_PENDING_DRAFTS: self.get_pending_drafts,
            ToolName.SUBMIT_DRAFT_REVIEW: self.submit_draft_review,
        }

    def get_pending_drafts(self, args: Dict[str, Any]) -> Dict[str, Any]:
        drafts = crud.list_drafts(self.db, self.agent.id, self.user_id, status="pending", type=args.get("type"))
        return {"drafts": [draft_details(d) for d in drafts], "count": len(drafts)}

    def submit_draft_review(self, args: Dict[str, Any]) -> Dict[str, Any]:
        draft_id = args.get("draftId")
        if not has_prefix(draft_id, "draft"):
            raise ToolError("Invalid draft ID format")
        score = safe_float(args.get("score"))
        if score is None or not 0 <= score <= 10:
            raise ToolError("score must be a number between 0 and 10")
        feedback = args.get("feedback")
        if not isinstance(feedback, str) or not feedback.strip():
            raise ToolError("feedback is required")
        tags = args.get("user_tags") or []
        if not isinstance(tags, list):
            raise ToolError("user_tags must be a list of strings")

        draft = crud.get_draft(self.db, draft_id)
        if draft is None:
            raise ToolError("Draft not found")
        if draft.user_id != self.user_id or draft.agent_id != self.agent.id:
            raise ToolError("Access denied")

        decision = "accepted" if score >= self.ACCEPT_THRESHOLD else "rejected"
        review = {
            "score": score,
            "feedback": feedback.strip(),
            "userTags": [str(t) for t in tags],
            "decision": decision,
            "reviewedAt": iso(utcnow()),
        }
        crud.update_draft(self.db, draft, {"status": "reviewed", "review": review})
        return {"success": True, "draftId": draft.id, "decision": decision, "review": review}


TOOLSET_CLASSES = (ActionToolset, NoteToolset, FilesystemToolset, ReviewToolset)

TOOL_SCHEMAS: Dict[ToolName, Dict[str, Any]] = {}
for _cls in TOOLSET_CLASSES:
    TOOL_SCHEMAS.update(_cls.SCHEMAS)

_missing = [t.value for t in ToolName if t not in TOOL_SCHEMAS]
if _missing:
    raise RuntimeError(f"Tools without a schema: {_missing}")
