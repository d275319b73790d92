"""Tests for {{name}} parameter substitution."""

from promptory.engine.parameters import extract_parameter_names, substitute, validate_parameters


def test_substitute_known_parameters():
    assert substitute("Hello {{name}}, you are {{age}}", {"name": "Ada", "age": "36"}) == "Hello Ada, you are 36"


def test_unknown_placeholders_are_left_intact():
    assert substitute("Hi {{name}} from {{city}}", {"name": "Bo"}) == "Hi Bo from {{city}}"


def test_repeated_placeholder():
    assert substitute("{{x}}-{{x}}", {"x": "1"}) == "1-1"


def test_substituted_values_are_not_rescanned():
    out = substitute("{{a}} {{b}}", {"a": "{{b}}", "b": "B"})
    assert out == "{{b}} B"


def test_replacement_is_literal():
    # Backslashes and group references must not be interpreted
    assert substitute("path={{p}}", {"p": r"C:\new\1"}) == r"path=C:\new\1"


def test_empty_template():
    assert substitute("", {"a": "b"}) == ""


def test_extract_names_ordered_and_unique():
    assert extract_parameter_names("{{b}} {{a}} {{b}} {{ c }}") == ["b", "a"]


def test_validate_reports_missing_and_blank():
    valid, missing = validate_parameters("{{a}} {{b}} {{c}}", {"a": "1", "b": "  "})
    assert not valid
    assert missing == ["b", "c"]


def test_validate_with_explicit_required():
    valid, missing = validate_parameters("{{a}}", {"a": "x"}, required=["a"])
    assert valid
    assert missing == []
