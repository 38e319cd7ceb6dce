"""Tests for sleep config resolution and the sleep trigger."""

import litellm
import pytest

from mnemo.core.config import MemoryFlushSettings, SleepSettings
from mnemo.sleep.config import (
    DEFAULT_CONTEXT_TOKENS,
    DEFAULT_SLEEP_PROMPT,
    SleepConfig,
    lookup_context_tokens,
    resolve_sleep_config,
)
from mnemo.sleep.trigger import calculate_sleep_threshold, should_sleep
from mnemo.sleep.types import ContextMessage, ConversationEntry, estimate_tokens, total_tokens

NOW = 1_700_000_000_000
MINUTE_MS = 60_000


def _entry(total: int | None, sleep_at: int | None = None) -> ConversationEntry:
    return ConversationEntry(conversation_id="c1", total_tokens=total, sleep_at=sleep_at)


def test_threshold_is_ratio_of_context_window():
    config = SleepConfig()
    assert calculate_sleep_threshold(200_000, config) == 160_000
    assert calculate_sleep_threshold(200_000, SleepConfig(threshold=1.5)) == 200_000
    assert calculate_sleep_threshold(0, config) == 0


def test_should_sleep_when_all_gates_pass():
    assert should_sleep(_entry(170_000), 200_000, SleepConfig(), message_count=20, now=NOW)


@pytest.mark.parametrize(
    ("entry", "message_count"),
    [
        (None, 20),
        (_entry(None), 20),
        (_entry(0), 20),
        (_entry(150_000), 20),
        (_entry(170_000), 5),
        (_entry(170_000, sleep_at=NOW - MINUTE_MS), 20),
    ],
)
def test_should_not_sleep(entry, message_count):
    assert not should_sleep(entry, 200_000, SleepConfig(), message_count=message_count, now=NOW)


def test_cooldown_expires():
    entry = _entry(170_000, sleep_at=NOW - 6 * MINUTE_MS)
    assert should_sleep(entry, 200_000, SleepConfig(), message_count=20, now=NOW)


def test_message_gate_skipped_when_count_unknown():
    assert should_sleep(_entry(170_000), 200_000, SleepConfig(), now=NOW)


def test_zero_threshold_never_sleeps():
    assert not should_sleep(_entry(170_000), 200_000, SleepConfig(threshold=0), now=NOW)


def test_resolve_defaults():
    config = resolve_sleep_config()
    assert config == SleepConfig()
    assert config.prompt == DEFAULT_SLEEP_PROMPT


def test_resolve_disabled():
    assert resolve_sleep_config(SleepSettings(enabled=False)) is None
    assert resolve_sleep_config(None, MemoryFlushSettings(enabled=False)) is None


def test_resolve_sleep_section():
    config = resolve_sleep_config(
        SleepSettings(
            threshold=0.6,
            cooldown_minutes=2.9,
            keep_recent_messages=4,
            compression_strategy="sliding-window",
            prompt="  going to sleep  ",
        )
    )
    assert config.threshold == 0.6
    assert config.cooldown_minutes == 2
    assert config.keep_recent_messages == 4
    assert config.compression_strategy == "sliding-window"
    assert config.prompt == "going to sleep"


def test_resolve_invalid_numbers_fall_back():
    config = resolve_sleep_config(
        SleepSettings(threshold=-1, min_messages_to_sleep=float("nan"), reserve_tokens_floor=-5)
    )
    assert config.threshold == 0.8
    assert config.min_messages_to_sleep == 10
    assert config.reserve_tokens_floor == 10_000


def test_legacy_flush_fills_gaps_only():
    config = resolve_sleep_config(
        SleepSettings(soft_threshold_tokens=1_000),
        MemoryFlushSettings(
            soft_threshold_tokens=2_000,
            reserve_tokens_floor=5_000,
            prompt="flush now",
            system_prompt="flushing",
        ),
    )
    assert config.soft_threshold_tokens == 1_000
    assert config.reserve_tokens_floor == 5_000
    assert config.prompt == "flush now"
    assert config.system_prompt == "flushing"
    assert config.threshold == 0.8


def test_legacy_only_config_still_enables_sleep():
    config = resolve_sleep_config(None, MemoryFlushSettings(soft_threshold_tokens=3_000))
    assert config is not None
    assert config.soft_threshold_tokens == 3_000


def test_lookup_context_tokens(monkeypatch):
    def fake_model_info(model):
        if model == "mystery-model":
            return {"max_input_tokens": 32_000}
        raise ValueError("unknown model")

    monkeypatch.setattr(litellm, "get_model_info", fake_model_info)

    assert lookup_context_tokens("gpt-4o", override=50_000) == 50_000
    assert lookup_context_tokens("gpt-4o") == 128_000
    assert lookup_context_tokens("claude-sonnet-4-20250514") == 1_000_000
    assert lookup_context_tokens("mystery-model") == 32_000
    assert lookup_context_tokens("nobody-knows") == DEFAULT_CONTEXT_TOKENS
    assert lookup_context_tokens(None) == DEFAULT_CONTEXT_TOKENS


def test_token_estimates():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    messages = [ContextMessage.create("user", "a" * 40, timestamp=1), ContextMessage.create("assistant", "b" * 8)]
    assert total_tokens(messages) == 12


def test_entry_round_trip_and_legacy_fields():
    entry = ConversationEntry(conversation_id="c1", total_tokens=10, sleep_count=2, sleep_at=5)
    assert ConversationEntry.from_dict(entry.to_dict()) == entry
    assert "inputTokens" not in entry.to_dict()

    legacy = ConversationEntry.from_dict(
        {"conversationId": "c2", "memoryFlushCount": 3, "memoryFlushAt": 99}
    )
    assert legacy.sleep_count == 3
    assert legacy.sleep_at == 99
