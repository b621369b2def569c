"""
Sandboxed per-agent file access.

Every path is resolved inside ``<data_root>/<local_data_path>``; anything that
escapes that directory is refused. Functions return result dicts rather than
raising so they can be handed straight back to the model.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")


class PathTraversalError(ValueError):
    pass


def agent_data_path(data_root: Path, local_data_path: Optional[str]) -> Optional[Path]:
    if not local_data_path or not isinstance(local_data_path, str):
        return None
    sanitized = _UNSAFE.sub("", local_data_path)
    if sanitized != local_data_path:
        logger.warning("Sanitized local_data_path %r -> %r", local_data_path, sanitized)
    if not sanitized:
        return None
    return Path(data_root).resolve() / sanitized


def resolve_safe_path(base: Path, relative_path: Optional[str]) -> Path:
    relative = (relative_path or "").lstrip("/\\")
    full = (base / relative).resolve()
    if full != base and base not in full.parents:
        raise PathTraversalError("Path traversal detected")
    return full


def read_file(base: Path, relative_path: str) -> Dict[str, Any]:
    try:
        full = resolve_safe_path(base, relative_path)
        return {"success": True, "content": full.read_text(encoding="utf-8")}
    except PathTraversalError:
        return {"success": False, "error": "Invalid path: access denied"}
    except FileNotFoundError:
        return {"success": False, "error": f"File not found: {relative_path}"}
    except OSError as e:
        return {"success": False, "error": str(e)}


def write_file(base: Path, relative_path: str, content: str, mode: str = "overwrite") -> Dict[str, Any]:
    try:
        full = resolve_safe_path(base, relative_path)
        if full == base:
            return {"success": False, "error": "A file path is required"}
        full.parent.mkdir(parents=True, exist_ok=True)
        with full.open("a" if mode == "append" else "w", encoding="utf-8") as fh:
            fh.write(content)
        return {"success": True, "path": relative_path}
    except PathTraversalError:
        return {"success": False, "error": "Invalid path: access denied"}
    except OSError as e:
        return {"success": False, "error": str(e)}


def list_files(base: Path, relative_path: str = "") -> Dict[str, Any]:
    try:
        full = resolve_safe_path(base, relative_path)
        if not full.exists():
            return {"success": True, "files": []}
        files = [
            {
                "name": entry.name,
                "type": "directory" if entry.is_dir() else "file",
                "path": str(Path(relative_path) / entry.name) if relative_path else entry.name,
            }
            for entry in sorted(full.iterdir(), key=lambda p: p.name)
        ]
        return {"success": True, "files": files}
    except PathTraversalError:
        return {"success": False, "error": "Invalid path: access denied"}
    except OSError as e:
        return {"success": False, "error": str(e)}
