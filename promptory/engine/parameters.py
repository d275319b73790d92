"""Parameter substitution for ``{{name}}`` placeholders in prompt templates."""

from __future__ import annotations

import re

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def extract_parameter_names(template: str) -> list[str]:
    """Placeholder names in order of first appearance, without duplicates."""
    seen: dict[str, None] = {}
    for match in _PLACEHOLDER.finditer(template or ""):
        seen.setdefault(match.group(1), None)
    return list(seen)


def substitute(template: str, parameters: dict[str, str]) -> str:
    """Replace known placeholders in a single pass.

    Unknown placeholders are left as-is, and substituted values are never
    re-scanned, so a value containing ``{{x}}`` stays literal.
    """
    if not template:
        return ""

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in parameters:
            return str(parameters[name])
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, template)


def validate_parameters(
    template: str,
    parameters: dict[str, str],
    required: list[str] | None = None,
) -> tuple[bool, list[str]]:
    """Return ``(valid, missing)``; blank values count as missing."""
    names = required if required is not None else extract_parameter_names(template)
    missing = [
        name for name in names
        if parameters.get(name) is None or not str(parameters[name]).strip()
    ]
    return not missing, missing
