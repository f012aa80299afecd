from __future__ import annotations

from collections.abc import Mapping

REDACTED = "***REDACTED***"

SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"authorization", "cookie", "x-api-key", "api_key", "apikey", "token", "secret", "password"}
)
SENSITIVE_MARKERS: tuple[str, ...] = ("sk-", "bearer ", "token")


def mask_credential(credential: str | None) -> str:
    """Loggable hint of a presented credential: its length, never its value."""
    if not credential:
        return "<missing>"
    return f"<{len(credential)} chars>"


def redact_sensitive(value: object) -> object:
    if isinstance(value, Mapping):
        return {
            str(key): REDACTED if str(key).lower() in SENSITIVE_KEYS else redact_sensitive(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_sensitive(x) for x in value]
    if isinstance(value, str) and len(value) >= 24 and any(m in value.lower() for m in SENSITIVE_MARKERS):
        return REDACTED
    return value
