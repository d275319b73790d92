"""Tests for results-tree path confinement."""

from pathlib import Path

import pytest

from promptory.engine.errors import PathTraversalError
from promptory.engine.path_safety import (
    ensure_safe_identifier,
    resolve_within,
    sanitize_prompt_name,
)


def test_sanitize_replaces_invalid_characters():
    assert sanitize_prompt_name('a<b>:c"d|e?f*g', "prompt-0000abcd") == "a_b__c_d_e_f_g_0000abcd"


def test_sanitize_truncates_long_names():
    name = sanitize_prompt_name("x" * 300, "12345678")
    assert name == "x" * 100 + "_12345678"


def test_sanitize_empty_name_falls_back():
    assert sanitize_prompt_name("   ", "abcdefgh") == "untitled_abcdefgh"


@pytest.mark.parametrize("name", ["../escape", "..\\escape", "a/../../b", ".."])
def test_sanitize_rejects_parent_references(name):
    with pytest.raises(PathTraversalError):
        sanitize_prompt_name(name, "abcdefgh")


def test_sanitize_keeps_harmless_dots():
    assert sanitize_prompt_name("v1.2 notes...", "abcdefgh") == "v1.2 notes_abcdefgh"


@pytest.mark.parametrize("value", ["../x", "a/b", "a\\b", "..", "", "bad\x00id", "/etc/passwd"])
def test_identifier_rejects_unsafe_values(value):
    with pytest.raises(PathTraversalError):
        ensure_safe_identifier(value, "response id")


def test_resolve_within(tmp_path: Path):
    assert resolve_within(tmp_path, "dir/file.md") == (tmp_path / "dir" / "file.md").resolve()
    with pytest.raises(PathTraversalError):
        resolve_within(tmp_path, "../outside.md")
    with pytest.raises(PathTraversalError):
        resolve_within(tmp_path, "/etc/passwd")
