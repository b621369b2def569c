"""
Exception types shared by the orchestration core and the routers.
"""
from typing import Optional


class SignalParseError(Exception):
    """Model output announced a signal but its payload could not be extracted or validated."""

    def __init__(self, message: str, kind: Optional[str] = None, raw: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.raw = raw


class LLMProviderError(Exception):
    """Failure talking to the hosted model: timeout, rate limit, outage."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    PROVIDER = "provider"

    USER_MESSAGES = {
        TIMEOUT: "The assistant is taking too long to respond. Please try a simpler request.",
        RATE_LIMITED: "The assistant is rate limited right now. Please wait a moment and try again.",
        UNAVAILABLE: "The assistant is temporarily unavailable. Please try again shortly.",
        PROVIDER: "The assistant could not process this request.",
    }

    def __init__(self, kind: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        return self.USER_MESSAGES.get(self.kind, self.USER_MESSAGES[self.PROVIDER])


class LifecycleError(Exception):
    """Illegal action state transition."""


class ToolError(Exception):
    """Expected tool failure; reported back to the model as ``{"error": message}``."""
