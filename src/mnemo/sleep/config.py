"""Sleep configuration resolution and context-window lookup."""

import math
from dataclasses import dataclass

import litellm

from mnemo.core.config import CompressionStrategy, MemoryFlushSettings, SleepSettings
from mnemo.core.logging import get_logger

logger = get_logger("sleep.config")

DEFAULT_SLEEP_THRESHOLD = 0.8
DEFAULT_COOLDOWN_MINUTES = 5
DEFAULT_MIN_MESSAGES_TO_SLEEP = 10
DEFAULT_KEEP_RECENT_MESSAGES = 10
DEFAULT_RESERVE_TOKENS_FLOOR = 10_000
DEFAULT_SOFT_THRESHOLD_TOKENS = 4_000
DEFAULT_CONTEXT_TOKENS = 200_000

DEFAULT_SLEEP_PROMPT = (
    "Sleep mode: processing and consolidating memories. "
    "Memories are being automatically saved by the system."
)
DEFAULT_SLEEP_SYSTEM_PROMPT = (
    "Sleep mode: The system is automatically processing and consolidating memories. "
    "No action needed - memories are being saved automatically."
)

# Keys ending in "-" match as prefixes
MODEL_CONTEXT_WINDOWS: dict[str, int] = {
    # Anthropic
    "claude-3-5-sonnet-20241022": 200_000,
    "claude-3-opus-20240229": 200_000,
    "claude-3-sonnet-20240229": 200_000,
    "claude-3-haiku-20240307": 200_000,
    "claude-sonnet-": 1_000_000,
    # OpenAI
    "gpt-4o": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4": 8_192,
    "gpt-3.5-turbo": 16_385,
    # OpenRouter
    "anthropic/claude-3.5-sonnet": 200_000,
    "openai/gpt-4o": 128_000,
    "google/gemini-pro": 1_000_000,
    "meta-llama/llama-3.1-405b": 128_000,
}


@dataclass
class SleepConfig:
    """Resolved sleep settings; every field has a usable value."""

    enabled: bool = True
    threshold: float = DEFAULT_SLEEP_THRESHOLD
    cooldown_minutes: int = DEFAULT_COOLDOWN_MINUTES
    min_messages_to_sleep: int = DEFAULT_MIN_MESSAGES_TO_SLEEP
    keep_recent_messages: int = DEFAULT_KEEP_RECENT_MESSAGES
    compression_strategy: CompressionStrategy = "hybrid"
    prompt: str = DEFAULT_SLEEP_PROMPT
    system_prompt: str = DEFAULT_SLEEP_SYSTEM_PROMPT
    reserve_tokens_floor: int = DEFAULT_RESERVE_TOKENS_FLOOR
    soft_threshold_tokens: int = DEFAULT_SOFT_THRESHOLD_TOKENS


def _non_negative_float(value: float | None) -> float | None:
    if value is None or not math.isfinite(value) or value < 0:
        return None
    return float(value)


def _non_negative_int(value: float | None) -> int | None:
    value = _non_negative_float(value)
    return math.floor(value) if value is not None else None


def _text(*values: str | None) -> str | None:
    for value in values:
        if value and value.strip():
            return value.strip()
    return None


def resolve_sleep_config(
    sleep: SleepSettings | None = None,
    memory_flush: MemoryFlushSettings | None = None,
) -> SleepConfig | None:
    """Resolve the canonical sleep config; None means sleep is disabled.

    The legacy memoryFlush section only fills gaps: it may disable sleep when
    no sleep section exists and supplies prompts and token floors the sleep
    section leaves unset. The trigger ratio never comes from it.
    """
    if sleep is not None and sleep.enabled is False:
        return None
    if memory_flush is not None and memory_flush.enabled is False and sleep is None:
        return None

    sleep = sleep or SleepSettings()
    legacy = memory_flush or MemoryFlushSettings()

    enabled = sleep.enabled if sleep.enabled is not None else legacy.enabled
    if enabled is False:
        return None

    def pick_int(primary: float | None, fallback: float | None, default: int) -> int:
        for value in (primary, fallback):
            resolved = _non_negative_int(value)
            if resolved is not None:
                return resolved
        return default

    threshold = _non_negative_float(sleep.threshold)
    return SleepConfig(
        enabled=True,
        threshold=threshold if threshold is not None else DEFAULT_SLEEP_THRESHOLD,
        cooldown_minutes=pick_int(sleep.cooldown_minutes, None, DEFAULT_COOLDOWN_MINUTES),
        min_messages_to_sleep=pick_int(
            sleep.min_messages_to_sleep, None, DEFAULT_MIN_MESSAGES_TO_SLEEP
        ),
        keep_recent_messages=pick_int(
            sleep.keep_recent_messages, None, DEFAULT_KEEP_RECENT_MESSAGES
        ),
        compression_strategy=sleep.compression_strategy or "hybrid",
        prompt=_text(sleep.prompt, legacy.prompt) or DEFAULT_SLEEP_PROMPT,
        system_prompt=_text(sleep.system_prompt, legacy.system_prompt) or DEFAULT_SLEEP_SYSTEM_PROMPT,
        reserve_tokens_floor=pick_int(
            sleep.reserve_tokens_floor, legacy.reserve_tokens_floor, DEFAULT_RESERVE_TOKENS_FLOOR
        ),
        soft_threshold_tokens=pick_int(
            sleep.soft_threshold_tokens, legacy.soft_threshold_tokens, DEFAULT_SOFT_THRESHOLD_TOKENS
        ),
    )


def lookup_context_tokens(model_id: str | None = None, override: int | None = None) -> int:
    """Context window for a model: override, known table, LiteLLM, then default."""
    if override and override > 0:
        return override
    if not model_id:
        return DEFAULT_CONTEXT_TOKENS

    if model_id in MODEL_CONTEXT_WINDOWS:
        return MODEL_CONTEXT_WINDOWS[model_id]
    for prefix, tokens in MODEL_CONTEXT_WINDOWS.items():
        if prefix.endswith("-") and model_id.startswith(prefix):
            return tokens

    try:
        info = litellm.get_model_info(model_id)
        max_input = info.get("max_input_tokens") or info.get("max_tokens")
        if max_input:
            return int(max_input)
    except Exception as e:
        logger.debug(f"No context window known for {model_id}: {e}")

    return DEFAULT_CONTEXT_TOKENS
