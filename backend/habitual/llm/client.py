"""
Hosted model access.

The orchestration core only needs ``complete(messages, tools, system_blocks)``;
:class:`OpenAIService` implements it on top of the OpenAI chat completions API
and normalises the reply into a :class:`Completion`. Conversation messages use
the chat-completions shape (``role``/``content``, ``tool_calls``, ``tool``
results) so tool round-trips can be appended without translation.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from ..config import settings
from ..errors import LLMProviderError

try:
    import openai
    from openai import OpenAI
except Exception:  # pragma: no cover
    openai = None  # type: ignore
    OpenAI = None  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


@dataclass(frozen=True)
class SystemBlock:
    text: str
    cacheable: bool = False


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    input: Dict[str, Any]


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0


@dataclass
class Completion:
    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    model: str = DEFAULT_MODEL
    stop_reason: Optional[str] = None
    duration_ms: int = 0


class LLMService(Protocol):
    def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        system_blocks: Optional[List[SystemBlock]] = None,
    ) -> Completion:
        ...


def assistant_tool_message(completion: Completion) -> Dict[str, Any]:
    """Assistant turn carrying the tool invocations it requested."""
    return {
        "role": "assistant",
        "content": completion.text or "",
        "tool_calls": [
            {
                "id": tc.id,
                "type": "function",
                "function": {"name": tc.name, "arguments": json.dumps(tc.input)},
            }
            for tc in completion.tool_calls
        ],
    }


def tool_result_message(call: ToolCall, result: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "role": "tool",
        "tool_call_id": call.id,
        "name": call.name,
        "content": json.dumps(result, default=str),
    }


def to_openai_tool(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": schema["name"],
            "description": schema.get("description", ""),
            "parameters": schema.get("input_schema", {"type": "object", "properties": {}}),
        },
    }


def _map_provider_error(exc: Exception) -> LLMProviderError:
    if isinstance(exc, openai.APITimeoutError):
        return LLMProviderError(LLMProviderError.TIMEOUT, str(exc))
    if isinstance(exc, openai.RateLimitError):
        return LLMProviderError(LLMProviderError.RATE_LIMITED, str(exc), status_code=exc.status_code)
    if isinstance(exc, openai.APIStatusError):
        kind = LLMProviderError.UNAVAILABLE if exc.status_code >= 500 else LLMProviderError.PROVIDER
        return LLMProviderError(kind, str(exc), status_code=exc.status_code)
    if isinstance(exc, openai.APIConnectionError):
        return LLMProviderError(LLMProviderError.UNAVAILABLE, str(exc))
    return LLMProviderError(LLMProviderError.PROVIDER, str(exc))


class OpenAIService:
    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        client: Any = None,
    ):
        self.model = model or (settings.model_id or DEFAULT_MODEL)
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.temperature = settings.llm_temperature if temperature is None else temperature
        if client is not None:
            self.client = client
            return
        if OpenAI is None:
            raise RuntimeError("OpenAI client not available")
        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY not configured")
        # No SDK retries: a retried call would blow the request lifetime.
        self.client = OpenAI(
            api_key=api_key,
            timeout=timeout or settings.llm_timeout_seconds,
            max_retries=0,
        )

    def _system_messages(self, system_blocks: List[SystemBlock]) -> List[Dict[str, Any]]:
        # OpenAI caches by exact prompt prefix, so stable blocks go first.
        cached = [b for b in system_blocks if b.cacheable]
        volatile = [b for b in system_blocks if not b.cacheable]
        return [{"role": "system", "content": b.text} for b in cached + volatile]

    def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        system_blocks: Optional[List[SystemBlock]] = None,
    ) -> Completion:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": self._system_messages(system_blocks or []) + list(messages),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if tools:
            kwargs["tools"] = [to_openai_tool(t) for t in tools]

        started = time.monotonic()
        try:
            response = self.client.chat.completions.create(**kwargs)
        except Exception as e:
            if openai is None or not isinstance(e, openai.OpenAIError):
                raise
            err = _map_provider_error(e)
            logger.error("LLM call failed: kind=%s status=%s type=%s", err.kind, err.status_code, type(e).__name__)
            raise err from e
        duration_ms = int((time.monotonic() - started) * 1000)
        return self._to_completion(response, duration_ms)

    def _to_completion(self, response: Any, duration_ms: int) -> Completion:
        choice = response.choices[0]
        msg = choice.message
        calls: List[ToolCall] = []
        for tc in getattr(msg, "tool_calls", None) or []:
            try:
                args = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning("Tool call %s had non-JSON arguments", tc.function.name)
                args = {}
            calls.append(ToolCall(id=tc.id, name=tc.function.name, input=args if isinstance(args, dict) else {}))

        usage = Usage()
        if response.usage is not None:
            details = getattr(response.usage, "prompt_tokens_details", None)
            usage = Usage(
                input_tokens=response.usage.prompt_tokens or 0,
                output_tokens=response.usage.completion_tokens or 0,
                cache_read_tokens=(getattr(details, "cached_tokens", 0) or 0) if details else 0,
            )
        return Completion(
            text=msg.content or "",
            tool_calls=calls,
            usage=usage,
            model=getattr(response, "model", None) or self.model,
            stop_reason=choice.finish_reason,
            duration_ms=duration_ms,
        )


def get_llm_service() -> LLMService:
    """FastAPI dependency; tests override it with a scripted fake."""
    return OpenAIService()
