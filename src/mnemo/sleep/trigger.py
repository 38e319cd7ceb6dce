"""When to sleep: token threshold, message count and cooldown gates."""

import math
import time

from mnemo.sleep.config import SleepConfig
from mnemo.sleep.types import ConversationEntry


def calculate_sleep_threshold(context_window_tokens: int, config: SleepConfig) -> int:
    """Token count at which sleep kicks in (e.g. 200k * 0.8 = 160k)."""
    context_window = max(1, math.floor(context_window_tokens))
    ratio = max(0.0, min(1.0, config.threshold))
    return math.floor(context_window * ratio)


def should_sleep(
    entry: ConversationEntry | None,
    context_window_tokens: int,
    config: SleepConfig,
    message_count: int | None = None,
    now: int | None = None,
) -> bool:
    """True only when the token, message-count and cooldown gates all pass."""
    total = entry.total_tokens if entry else None
    if not total or total <= 0:
        return False

    if message_count is not None and message_count < config.min_messages_to_sleep:
        return False

    threshold = calculate_sleep_threshold(context_window_tokens, config)
    if threshold <= 0 or total < threshold:
        return False

    if entry.sleep_at:
        now = now if now is not None else int(time.time() * 1000)
        if now - entry.sleep_at < config.cooldown_minutes * 60_000:
            return False

    return True
