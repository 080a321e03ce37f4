"""
Name helpers for backend resources.
"""

import re

# Kubernetes-style name: lowercase alphanumeric and hyphens, max 63 chars
MAX_NAME_LENGTH = 63
_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")
_HYPHEN_RUNS = re.compile(r"-{2,}")


def sanitize_name(name: str) -> str:
    """
    Turn an integration name into a repository/resource name.

    Raises:
        ValueError: If nothing usable is left of the name.
    """
    sanitized = _INVALID_CHARS.sub("-", name.strip().lower())
    sanitized = _HYPHEN_RUNS.sub("-", sanitized).strip("-")
    sanitized = sanitized[:MAX_NAME_LENGTH].rstrip("-")
    if not sanitized:
        raise ValueError(f"Cannot derive a resource name from '{name}'")
    return sanitized
