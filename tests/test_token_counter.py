"""Tests for token estimation and context limits."""

from promptory.engine.token_counter import DEFAULT_CONTEXT_WINDOW, TokenCounter


def test_estimate_mean_of_chars_and_words():
    tc = TokenCounter()
    # 11 chars -> 3, 2 words -> (3 + 2) / 2 -> 3
    assert tc.estimate_tokens("hello world") == 3
    assert tc.estimate_tokens("") == 0


def test_known_and_unknown_windows():
    tc = TokenCounter()
    assert tc.context_window("openai", "gpt-4-turbo") == 128000
    assert tc.context_window("ollama", "gemma3:latest") == 8192
    assert tc.context_window("ollama", "mystery") == DEFAULT_CONTEXT_WINDOW


def test_conservative_limit():
    tc = TokenCounter()
    assert tc.limit_for("ollama", "gemma3") == 6553
    check = tc.check("word " * 20000, "ollama", "gemma3")
    assert not check.within_limit
    assert check.limit == 6553


def test_context_window_overrides():
    tc = TokenCounter({"ollama:tiny": 1000})
    assert tc.limit_for("ollama", "tiny") == 800
    assert tc.limit_for("ollama", "tiny:latest") == 800
