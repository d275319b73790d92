"""YAML front-matter for response markdown files."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import yaml

from promptory.schemas.llm import LLMResponseMetadata

logger = logging.getLogger(__name__)

_DELIMITER = "---"


class _LiteralStr(str):
    """Rendered as a YAML literal block (``|``)."""


class _FrontMatterDumper(yaml.SafeDumper):
    pass


def _literal_representer(dumper: yaml.SafeDumper, data: _LiteralStr) -> yaml.Node:
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style="|")


_FrontMatterDumper.add_representer(_LiteralStr, _literal_representer)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def build_front_matter(metadata: LLMResponseMetadata, prompt_content: str | None = None) -> dict[str, Any]:
    """Front-matter mapping for a response; absent optional fields are omitted."""
    fm: dict[str, Any] = {
        "schema_version": metadata.schema_version,
        "id": metadata.id,
        "prompt_id": metadata.prompt_id,
        "provider": metadata.provider,
        "model": metadata.model,
    }
    if prompt_content is not None:
        fm["prompt"] = _LiteralStr(prompt_content)
    fm["created_at"] = _iso(metadata.created_at)
    if metadata.response_time_ms is not None:
        fm["response_time_ms"] = metadata.response_time_ms
    if metadata.parameters:
        fm["parameters"] = dict(metadata.parameters)
    if metadata.token_usage is not None:
        fm["token_usage"] = metadata.token_usage.model_dump()
    if metadata.cost_estimate is not None:
        fm["cost_estimate"] = metadata.cost_estimate
    fm["status"] = metadata.status
    if metadata.error_code:
        fm["error_code"] = metadata.error_code
    if metadata.error_message:
        fm["error_message"] = metadata.error_message
    if metadata.title is not None:
        fm.update(title_fields(
            metadata.title.status,
            metadata.title.generated_title,
            metadata.title.generated_at,
            metadata.title.model,
        ))
    return fm


def title_fields(
    status: str,
    title: str | None = None,
    generated_at: datetime | None = None,
    model: str | None = None,
) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if title:
        fields["generated_title"] = title
    fields["title_generation_status"] = status
    if generated_at:
        fields["title_generated_at"] = _iso(generated_at)
    if model:
        fields["title_model"] = model
    return fields


def render(front_matter: dict[str, Any], body: str) -> str:
    fm = dict(front_matter)
    # Keep the prompt a literal block across read-modify-write cycles
    if isinstance(fm.get("prompt"), str) and not isinstance(fm["prompt"], _LiteralStr):
        fm["prompt"] = _LiteralStr(fm["prompt"])
    dumped = yaml.dump(
        fm,
        Dumper=_FrontMatterDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{_DELIMITER}\n{dumped}{_DELIMITER}\n\n{body}"


def parse(text: str) -> tuple[dict[str, Any], str]:
    """Split a file into ``(front_matter, body)``.

    Files without parseable front-matter come back as ``({}, text)``.
    """
    if not text.startswith(_DELIMITER + "\n"):
        return {}, text
    end = text.find(f"\n{_DELIMITER}\n", len(_DELIMITER))
    if end == -1:
        return {}, text
    raw = text[len(_DELIMITER) + 1:end + 1]
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        logger.warning(f"Unparseable front-matter, returning raw text: {e}")
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    body = text[end + len(_DELIMITER) + 2:]
    if body.startswith("\n"):
        body = body[1:]
    return data, body
