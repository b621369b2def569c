"""
ID generation for stored entities.

IDs are prefixed strings (``action-…``, ``note-…``) so the prefix doubles as a
cheap type tag that can be checked before touching the database.
"""
import secrets
import time

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def unique_id(prefix: str = "") -> str:
    t = _base36(int(time.time() * 1000))
    r = "".join(secrets.choice(_ALPHABET) for _ in range(4))
    return f"{prefix}-{t}{r}" if prefix else f"{t}{r}"


def has_prefix(value, prefix: str) -> bool:
    return isinstance(value, str) and value.startswith(f"{prefix}-") and len(value) > len(prefix) + 1


def generate_user_id() -> str:
    return unique_id("u")


def generate_agent_id() -> str:
    return unique_id("agent")


def generate_action_id() -> str:
    return unique_id("action")


def generate_note_id() -> str:
    return unique_id("note")


def generate_draft_id() -> str:
    return unique_id("draft")


def generate_measurement_id() -> str:
    return unique_id("m")


def generate_log_id() -> str:
    return unique_id("alog")
