"""
Redaction utilities for sanitizing sensitive data before it is logged or stored.

Used on:
- trigger payloads persisted with an execution
- node outputs persisted as NodeResults (response bodies can echo tokens)
- outbound request headers when they are logged
"""
import re
from typing import Any


# Sensitive key patterns (case-insensitive).  Matching is on the key name,
# never on the value.
SENSITIVE_PATTERNS = [
    re.compile(r"^.*password.*$", re.IGNORECASE),
    re.compile(r"^.*passwd.*$", re.IGNORECASE),
    re.compile(r"^.*token.*$", re.IGNORECASE),
    re.compile(r"^.*api[_-]?key.*$", re.IGNORECASE),
    re.compile(r"^.*secret.*$", re.IGNORECASE),
    re.compile(r"^.*credential.*$", re.IGNORECASE),
    re.compile(r"^.*authorization.*$", re.IGNORECASE),
    re.compile(r"^.*cookie.*$", re.IGNORECASE),
    re.compile(r"^.*private[_-]?key.*$", re.IGNORECASE),
    re.compile(r"^.*access[_-]?key.*$", re.IGNORECASE),
]

REDACTION_PLACEHOLDER = "***REDACTED***"


def _is_sensitive_key(key: str, extra_keys: frozenset[str] = frozenset()) -> bool:
    """Check if a key name matches any sensitive pattern or an explicit key."""
    if key.lower() in extra_keys:
        return True
    return any(pattern.match(key) for pattern in SENSITIVE_PATTERNS)


def redact_sensitive_data(
    data: Any,
    max_depth: int = 10,
    extra_keys: frozenset[str] = frozenset(),
) -> Any:
    """
    Recursively redact sensitive fields from data structures.

    Args:
        data: Dict, list, or primitive value to redact
        max_depth: Maximum recursion depth to prevent infinite loops
        extra_keys: Lower-cased key names that are always redacted, on top of
                    the default patterns (e.g. header names a credential injects).

    Returns:
        Copy of data with sensitive fields redacted
    """
    if max_depth <= 0:
        return data

    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            if _is_sensitive_key(str(key), extra_keys):
                redacted[key] = REDACTION_PLACEHOLDER
            else:
                redacted[key] = redact_sensitive_data(value, max_depth - 1, extra_keys)
        return redacted

    elif isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1, extra_keys) for item in data]

    elif isinstance(data, tuple):
        return tuple(redact_sensitive_data(item, max_depth - 1, extra_keys) for item in data)

    else:
        # Primitive types (str, int, float, bool, None) pass through
        return data


def redact_headers(headers: dict[str, str], injected: set[str] | frozenset[str] = frozenset()) -> dict[str, str]:
    """Return a loggable copy of *headers*; credential-injected names are always masked."""
    return redact_sensitive_data(
        dict(headers),
        max_depth=1,
        extra_keys=frozenset(name.lower() for name in injected),
    )
