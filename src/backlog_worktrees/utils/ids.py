"""Identifier generation for worktree records."""

import re
import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_lowercase


def to_base36(number: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"

    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_ALPHABET[remainder])
    return "".join(reversed(digits))


def slugify(name: str) -> str:
    """Lowercase a name and collapse anything outside [a-z0-9-] into single hyphens."""
    slug = re.sub(r"[^a-z0-9-]", "-", name.lower())
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def generate_worktree_id(name: str) -> str:
    """
    Generate a new worktree id.

    Pattern: wt-{slug}-{base36 milliseconds}-{6 random base36 chars}.
    The random suffix keeps ids distinct for records created from the
    same name within the same millisecond.

    Args:
        name: Human-chosen worktree name.

    Returns:
        A new, never-before-issued identifier.
    """
    timestamp = to_base36(time.time_ns() // 1_000_000)
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    slug = slugify(name) or "worktree"
    return f"wt-{slug}-{timestamp}-{random_part}"
