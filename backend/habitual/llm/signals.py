"""
Signal protocol: structured payloads embedded in otherwise conversational model output.

A signal reply looks like::

    GENERATE_ACTIONS
    ---
    { ...json object... }

The first non-blank line is the header token, the next line is exactly ``---``,
and the payload is the first JSON object after it. ``READY_TO_CREATE`` carries a
line-oriented ``LABEL: value`` payload instead of JSON.

Parsing runs as a small state machine over lines (header, separator,
payload-start, payload-scan, payload-end). A reply whose header is not a known
token, or is not followed by the separator, is plain conversation. Once a header
and separator matched, any failure to isolate, decode or validate the payload is
a :class:`SignalParseError`.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import SignalParseError

SEPARATOR = "---"


class SignalKind(str, Enum):
    GENERATE_ACTIONS = "GENERATE_ACTIONS"
    GENERATE_ASSET = "GENERATE_ASSET"
    STORE_MEASUREMENT = "STORE_MEASUREMENT"
    READY_TO_CREATE = "READY_TO_CREATE"


# ============ Payload schemas ============

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TaskConfig(_Payload):
    instructions: str = Field(..., min_length=1)
    expected_output: str = Field(..., min_length=1, alias="expectedOutput")


class GeneratedAction(_Payload):
    title: str = Field(..., min_length=1)
    description: str
    priority: Literal["low", "medium", "high"] = "medium"
    task_type: Literal["scheduled"] = Field("scheduled", alias="taskType")
    task_config: TaskConfig = Field(..., alias="taskConfig")


class GeneratedAsset(_Payload):
    title: str = Field(..., min_length=1)
    description: str
    type: Literal["markdown", "code", "text", "prompt"]
    content: str


class MeasurementDimension(_Payload):
    name: str = Field(..., min_length=1)
    score: float = Field(..., ge=0, le=10)
    notes: Optional[str] = None


class MeasurementPayload(_Payload):
    dimensions: List[MeasurementDimension] = Field(..., min_length=1)
    notes: Optional[str] = None


class ReadyToCreateGoal(_Payload):
    title: str = Field(..., min_length=1)
    goal: str = Field(..., min_length=1)
    success_criteria: List[str] = Field(..., min_length=1)
    timeline: str = Field(..., min_length=1)


PAYLOAD_MODELS: Dict[SignalKind, Type[_Payload]] = {
    SignalKind.GENERATE_ACTIONS: GeneratedAction,
    SignalKind.GENERATE_ASSET: GeneratedAsset,
    SignalKind.STORE_MEASUREMENT: MeasurementPayload,
    SignalKind.READY_TO_CREATE: ReadyToCreateGoal,
}

ALL_SIGNALS: FrozenSet[SignalKind] = frozenset(SignalKind)
AGENT_CHAT_SIGNALS: FrozenSet[SignalKind] = frozenset(
    {SignalKind.GENERATE_ACTIONS, SignalKind.GENERATE_ASSET, SignalKind.STORE_MEASUREMENT}
)
SETUP_CHAT_SIGNALS: FrozenSet[SignalKind] = frozenset({SignalKind.READY_TO_CREATE})


@dataclass(frozen=True)
class Signal:
    kind: SignalKind
    payload: _Payload

    def as_dict(self) -> dict:
        return {"type": self.kind.value, "data": self.payload.model_dump(by_alias=True)}


# ============ Parser ============

class _State(Enum):
    HEADER = "header"
    SEPARATOR = "separator"
    PAYLOAD_START = "payload-start"
    PAYLOAD_SCAN = "payload-scan"
    PAYLOAD_END = "payload-end"


class _BraceScanner:
    """Tracks ``{``/``}`` depth across lines, skipping characters inside JSON strings."""

    def __init__(self):
        self.depth = 0
        self.in_string = False
        self.escaped = False
        self.closed_at: Optional[int] = None

    def feed(self, line: str) -> bool:
        for col, ch in enumerate(line):
            if self.in_string:
                if self.escaped:
                    self.escaped = False
                elif ch == "\\":
                    self.escaped = True
                elif ch == '"':
                    self.in_string = False
                continue
            if ch == '"':
                self.in_string = True
            elif ch == "{":
                self.depth += 1
            elif ch == "}":
                self.depth -= 1
                if self.depth == 0:
                    self.closed_at = col
                    return True
        return False


_READY_LABELS = ("TITLE:", "GOAL:", "SUCCESS_CRITERIA:", "TIMELINE:")


class SignalParser:
    def __init__(self, accept: Iterable[SignalKind] = ALL_SIGNALS):
        self.accept = frozenset(accept)

    def detect(self, text: str) -> Optional[SignalKind]:
        """Header + separator check only; does not touch the payload."""
        lines = (text or "").strip().split("\n")
        if len(lines) < 2:
            return None
        kind = self._match_header(lines[0])
        if kind is None or lines[1].strip() != SEPARATOR:
            return None
        return kind

    def parse(self, text: str) -> Optional[Signal]:
        lines = (text or "").strip().split("\n")
        state = _State.HEADER
        kind: Optional[SignalKind] = None
        scanner = _BraceScanner()
        start = end = -1

        for idx, line in enumerate(lines):
            if state is _State.HEADER:
                kind = self._match_header(line)
                if kind is None:
                    return None
                state = _State.SEPARATOR
                continue
            if state is _State.SEPARATOR:
                if line.strip() != SEPARATOR:
                    return None
                if kind is SignalKind.READY_TO_CREATE:
                    return Signal(kind, self._parse_labeled(kind, lines[idx + 1:]))
                state = _State.PAYLOAD_START
                continue
            if state is _State.PAYLOAD_START:
                if not line.strip().startswith("{"):
                    continue
                start = idx
                state = _State.PAYLOAD_SCAN
            if state is _State.PAYLOAD_SCAN and scanner.feed(line):
                end = idx
                state = _State.PAYLOAD_END
                break

        if state in (_State.HEADER, _State.SEPARATOR):
            return None
        if state is _State.PAYLOAD_START:
            raise SignalParseError(f"Could not find JSON object in {kind.value} response", kind=kind.value, raw=text)
        if state is _State.PAYLOAD_SCAN:
            raise SignalParseError(f"Unterminated JSON object in {kind.value} response", kind=kind.value,
                                   raw="\n".join(lines[start:]))

        body = lines[start:end + 1]
        body[-1] = body[-1][:scanner.closed_at + 1]
        raw = "\n".join(body)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SignalParseError(f"Failed to parse {kind.value} JSON: {e}", kind=kind.value, raw=raw) from e
        return Signal(kind, self._validate(kind, data, raw))

    def _match_header(self, line: str) -> Optional[SignalKind]:
        try:
            kind = SignalKind(line.strip())
        except ValueError:
            return None
        return kind if kind in self.accept else None

    def _validate(self, kind: SignalKind, data, raw: str) -> _Payload:
        try:
            return PAYLOAD_MODELS[kind].model_validate(data)
        except ValidationError as e:
            raise SignalParseError(f"Invalid {kind.value} payload: {e.error_count()} error(s)",
                                   kind=kind.value, raw=raw) from e

    def _parse_labeled(self, kind: SignalKind, lines: List[str]) -> _Payload:
        fields: Dict[str, object] = {"title": "", "goal": "", "success_criteria": [], "timeline": ""}
        section: Optional[str] = None
        for line in lines:
            stripped = line.strip()
            label, value = _split_label(stripped)
            if label == "TITLE:":
                section, fields["title"] = "title", value
            elif label == "GOAL:":
                section, fields["goal"] = "goal", value
            elif label == "SUCCESS_CRITERIA:":
                section = "criteria"
            elif label == "TIMELINE:":
                section, fields["timeline"] = "timeline", value
            elif not stripped:
                continue
            elif section in ("goal", "timeline"):
                fields[section] = f"{fields[section]} {stripped}".strip()
            elif section == "criteria" and stripped.startswith("-"):
                fields["success_criteria"].append(stripped[1:].strip())
        return self._validate(kind, fields, "\n".join(lines))


def _split_label(line: str) -> Tuple[Optional[str], str]:
    for label in _READY_LABELS:
        if line.startswith(label):
            return label, line[len(label):].strip()
    return None, ""


def parse_signal(text: str, accept: Iterable[SignalKind] = ALL_SIGNALS) -> Optional[Signal]:
    return SignalParser(accept).parse(text)


def format_signal(signal: Signal) -> str:
    """Render a signal in wire format; ``parse_signal(format_signal(s)) == s``."""
    if signal.kind is SignalKind.READY_TO_CREATE:
        p = signal.payload
        lines = [f"TITLE: {p.title}", f"GOAL: {p.goal}", "SUCCESS_CRITERIA:"]
        lines += [f"- {item}" for item in p.success_criteria]
        lines.append(f"TIMELINE: {p.timeline}")
        body = "\n".join(lines)
    else:
        body = json.dumps(signal.payload.model_dump(by_alias=True, exclude_none=True), indent=2)
    return f"{signal.kind.value}\n{SEPARATOR}\n{body}"
