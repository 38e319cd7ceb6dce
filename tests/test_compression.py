"""Tests for context compression strategies."""

import copy

import pytest

from mnemo.sleep.summarizer import (
    calculate_importance,
    compress_context,
    compress_importance_based,
    compress_progressive_summary,
    compress_sliding_window,
    compress_to_fit,
    extract_key_points,
    summarize_messages,
)
from mnemo.sleep.types import ContextMessage, estimate_tokens, total_tokens


def _conversation(count: int, chars: int = 100) -> list[ContextMessage]:
    """Alternating user/assistant messages of `chars` characters (chars/4 tokens each)."""
    messages = []
    for i in range(count):
        role = "user" if i % 2 == 0 else "assistant"
        body = f"Message {i:03d} about the trip planning and budget "
        content = (body * (chars // len(body) + 1))[:chars]
        messages.append(ContextMessage.create(role, content, timestamp=1_000 + i))
    return messages


def test_sliding_window_summarizes_old_messages():
    messages = _conversation(30)
    assert total_tokens(messages) == 750

    result = compress_sliding_window(messages, 300, keep_recent=5)

    assert total_tokens(result) <= 300
    summary = result[0]
    assert summary.role == "system"
    assert summary.compressed is True
    assert summary.original_length == 25
    assert summary.timestamp == messages[0].timestamp
    assert summary.content.startswith("[Compressed context from 25 earlier messages]")
    assert result[1:] == messages[-5:]


def test_sliding_window_is_idempotent():
    once = compress_sliding_window(_conversation(30), 300, keep_recent=5)
    twice = compress_sliding_window(once, 300, keep_recent=5)
    assert twice == once


def test_sliding_window_recent_over_budget_truncates():
    messages = _conversation(10)
    result = compress_sliding_window(messages, 60, keep_recent=5)
    assert result == messages[-2:]


def test_sliding_window_keep_recent_zero_summarizes_everything():
    messages = _conversation(10)
    result = compress_sliding_window(messages, 200, keep_recent=0)
    assert len(result) == 1
    assert result[0].original_length == 10


def test_compression_does_not_mutate_input():
    messages = _conversation(30)
    snapshot = copy.deepcopy(messages)
    for strategy in ("sliding-window", "importance-based", "progressive-summary", "hybrid"):
        compress_context(messages, 300, strategy, keep_recent=5)
    assert messages == snapshot


def test_compress_to_fit_drops_oldest():
    messages = _conversation(6)
    assert compress_to_fit(messages, 60) == messages[-2:]
    assert compress_to_fit(messages, 10) == []


def test_importance_prefers_system_and_recent_order_restored():
    messages = [
        ContextMessage.create("system", "s" * 100, timestamp=1),
        ContextMessage.create("user", "u" * 100, timestamp=2),
        ContextMessage.create("user", "v" * 100, timestamp=3),
        ContextMessage.create("assistant", "a" * 100, timestamp=4),
    ]

    result = compress_importance_based(messages, 50)

    assert result == messages[:2]


def test_importance_score_bounds():
    message = ContextMessage.create("system", "x" * 1000)
    assert calculate_importance(message, 0, 10) == 1.0
    plain = ContextMessage.create("assistant", "x" * 1000)
    assert 0.5 <= calculate_importance(plain, 9, 10) < 1.0


def test_progressive_summary_chunks_old_messages():
    messages = _conversation(20)

    result = compress_progressive_summary(messages, 600, keep_recent=5)

    summaries = [m for m in result if m.compressed]
    assert len(summaries) == 3
    assert [s.original_length for s in summaries] == [5, 5, 5]
    assert result[3:] == messages[-5:]
    assert total_tokens(result) <= 600


def test_progressive_summary_nothing_old():
    messages = _conversation(3)
    assert compress_progressive_summary(messages, 600, keep_recent=5) == messages


def test_hybrid_matches_sliding_window_when_it_fits():
    messages = _conversation(30)
    assert compress_context(messages, 300, "hybrid", 5) == compress_sliding_window(messages, 300, 5)


def test_unknown_strategy_truncates():
    messages = _conversation(6)
    assert compress_context(messages, 60, "telepathy", 2) == messages[-2:]


@pytest.mark.parametrize("budget", [30, 40, 100, 500])
def test_summary_respects_budget(budget):
    summary = summarize_messages(_conversation(20), budget)
    assert summary is not None
    assert estimate_tokens(summary) <= budget


def test_summary_edge_cases():
    assert summarize_messages([], 100) is None
    assert summarize_messages(_conversation(20), 2) is None
    tool_only = [ContextMessage.create("tool", "result payload")]
    assert summarize_messages(tool_only, 100) is None


def test_extract_key_points():
    assert extract_key_points("  short   text ", 50) == "short text"
    assert extract_key_points("First one. Second sentence is much longer than that", 30) == "First one..."
    assert extract_key_points("x" * 80, 20) == "x" * 17 + "..."
