"""
Deployment capabilities handed to the context builder and tool registry.

Built once from settings at the request edge so the core never reads ambient
configuration to decide which tools exist.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..config import Settings, settings as app_settings


@dataclass(frozen=True)
class Capabilities:
    filesystem: bool = False
    data_root: Path = Path("data")

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None) -> "Capabilities":
        s = s or app_settings
        return cls(filesystem=s.filesystem_tools_enabled, data_root=Path(s.agent_data_root).resolve())


def get_capabilities() -> Capabilities:
    return Capabilities.from_settings()
