"""Path confinement for the response file tree.

Names are checked as strings before any path is built, so a rejected name
never reaches a read or write.
"""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath, PureWindowsPath

from promptory.engine.errors import PathTraversalError

MAX_NAME_LENGTH = 100
SHORT_ID_LENGTH = 8

_INVALID_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_SEPARATORS = re.compile(r"[/\\]")


def _has_parent_reference(value: str) -> bool:
    return any(part == ".." for part in _SEPARATORS.split(value))


def ensure_safe_name(value: str, label: str) -> str:
    """Reject names that could step outside their directory."""
    if "\x00" in value:
        raise PathTraversalError(f"{label} contains a NUL byte")
    if _has_parent_reference(value):
        raise PathTraversalError(f"{label} contains a parent-directory reference")
    if PurePosixPath(value).is_absolute() or PureWindowsPath(value).is_absolute():
        raise PathTraversalError(f"{label} is an absolute path")
    return value


def ensure_safe_identifier(value: str, label: str) -> str:
    """Identifiers become file names verbatim, so no separators at all."""
    if not value:
        raise PathTraversalError(f"{label} is empty")
    ensure_safe_name(value, label)
    if _SEPARATORS.search(value) or value in (".", ".."):
        raise PathTraversalError(f"{label} contains a path separator")
    return value


def sanitize_prompt_name(prompt_name: str, prompt_id: str) -> str:
    """Directory name for a prompt: ``<cleaned name>_<last 8 chars of id>``."""
    ensure_safe_name(prompt_name or "", "prompt name")
    cleaned = _INVALID_CHARS.sub("_", prompt_name or "").strip().strip(".")
    cleaned = cleaned[:MAX_NAME_LENGTH].rstrip() or "untitled"
    short_id = _INVALID_CHARS.sub("_", prompt_id[-SHORT_ID_LENGTH:])
    return f"{cleaned}_{short_id}"


def resolve_within(root: Path, relative: str) -> Path:
    """Join ``relative`` onto ``root`` and refuse anything that escapes it."""
    ensure_safe_name(relative, "path")
    root = root.resolve()
    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        raise PathTraversalError("path escapes the results directory")
    return candidate
