"""Context compression strategies.

All strategies take an ordered message list and a token budget and return a
new list; inputs are never mutated. Token counts come from each message's
`tokens` field, summaries are measured with estimate_tokens().
"""

import re

from mnemo.core.config import CompressionStrategy
from mnemo.core.logging import get_logger
from mnemo.sleep.types import ContextMessage, estimate_tokens, total_tokens

logger = get_logger("sleep.summarizer")

KEY_POINT_CHARS = 50
_SENTENCE_RE = re.compile(r"[.!?]\s+")

_ROLE_BONUS = {"system": 0.2, "tool": 0.15, "user": 0.1}
_SPEAKER = {"user": "User", "assistant": "Assistant"}


def calculate_importance(message: ContextMessage, index: int, total: int) -> float:
    """Recency-weighted, length-centred score with a role bonus, capped at 1."""
    score = 0.5
    score += (1 - index / total) * 0.3 if total else 0.0
    length_ratio = min(message.tokens / 500, 1.0)
    score += (1 - abs(length_ratio - 0.5)) * 0.1
    score += _ROLE_BONUS.get(message.role, 0.0)
    return min(score, 1.0)


def extract_key_points(text: str, max_length: int) -> str:
    cleaned = " ".join(text.split())
    if len(cleaned) <= max_length:
        return cleaned

    sentences = _SENTENCE_RE.split(cleaned)
    if len(sentences) > 1 and len(sentences[0]) <= max_length:
        return sentences[0] + "..."

    return cleaned[: max(0, max_length - 3)] + "..."


def summarize_messages(messages: list[ContextMessage], max_tokens: int) -> str | None:
    """Fold user/assistant messages into one key-point summary within max_tokens.

    Header, speaker prefixes and separators all count against the budget, so
    estimate_tokens(result) never exceeds max_tokens.
    """
    if not messages:
        return None

    header = f"[Compressed context from {len(messages)} earlier messages]\n\n"
    used = estimate_tokens(header)
    if used > max_tokens:
        return None

    lines: list[str] = []
    for message in messages:
        speaker = _SPEAKER.get(message.role)
        if speaker is None:
            continue
        line = f"{speaker}: {extract_key_points(message.content, KEY_POINT_CHARS)}"
        cost = estimate_tokens(line + "\n")
        if used + cost <= max_tokens:
            lines.append(line)
            used += cost

    if not lines:
        return None
    return header + "\n".join(lines)


def _summary_message(summary: str, folded: list[ContextMessage]) -> ContextMessage:
    return ContextMessage(
        role="system",
        content=summary,
        tokens=estimate_tokens(summary),
        timestamp=folded[0].timestamp,
        compressed=True,
        summary=summary,
        original_length=len(folded),
    )


def _split_recent(
    messages: list[ContextMessage], keep_recent: int
) -> tuple[list[ContextMessage], list[ContextMessage]]:
    if keep_recent <= 0:
        return list(messages), []
    return list(messages[:-keep_recent]), list(messages[-keep_recent:])


def compress_to_fit(messages: list[ContextMessage], target_tokens: int) -> list[ContextMessage]:
    """Keep the newest messages that fit, dropping from the front."""
    kept: list[ContextMessage] = []
    used = 0
    for message in reversed(messages):
        if used + message.tokens > target_tokens:
            break
        kept.append(message)
        used += message.tokens
    kept.reverse()
    return kept


def compress_sliding_window(
    messages: list[ContextMessage], target_tokens: int, keep_recent: int
) -> list[ContextMessage]:
    """Keep the last keep_recent messages and summarize the rest into one.

    A list already within budget is returned as is, so re-compressing a
    compressed result changes nothing.
    """
    if total_tokens(messages) <= target_tokens:
        return list(messages)

    old, recent = _split_recent(messages, keep_recent)
    if not old:
        return compress_to_fit(recent, target_tokens)

    remaining = target_tokens - total_tokens(recent)
    if remaining <= 0:
        return compress_to_fit(recent, target_tokens)

    summary = summarize_messages(old, remaining)
    if summary:
        return [_summary_message(summary, old), *recent]
    return recent


def compress_importance_based(
    messages: list[ContextMessage], target_tokens: int
) -> list[ContextMessage]:
    """Greedily keep the highest-importance messages, then restore chronology."""
    total = len(messages)
    ranked = sorted(
        range(total),
        key=lambda i: calculate_importance(messages[i], i, total),
        reverse=True,
    )

    kept: list[int] = []
    used = 0
    for i in ranked:
        if used + messages[i].tokens <= target_tokens:
            kept.append(i)
            used += messages[i].tokens

    return [messages[i] for i in sorted(kept)]


def compress_progressive_summary(
    messages: list[ContextMessage], target_tokens: int, keep_recent: int
) -> list[ContextMessage]:
    """Summarize older messages in about three chunks, each with its own budget."""
    old, recent = _split_recent(messages, keep_recent)
    if not old:
        return recent

    chunk_size = max(5, len(old) // 3)
    chunks = [old[i : i + chunk_size] for i in range(0, len(old), chunk_size)]
    budget_per_chunk = (target_tokens - total_tokens(recent)) // len(chunks)

    summaries = []
    for chunk in chunks:
        summary = summarize_messages(chunk, budget_per_chunk)
        if summary:
            summaries.append(_summary_message(summary, chunk))

    return [*summaries, *recent]


def compress_context(
    messages: list[ContextMessage],
    target_tokens: int,
    strategy: CompressionStrategy | str,
    keep_recent: int,
) -> list[ContextMessage]:
    if strategy == "sliding-window":
        return compress_sliding_window(messages, target_tokens, keep_recent)
    if strategy == "importance-based":
        return compress_importance_based(messages, target_tokens)
    if strategy == "progressive-summary":
        return compress_progressive_summary(messages, target_tokens, keep_recent)
    if strategy == "hybrid":
        compressed = compress_sliding_window(messages, target_tokens, keep_recent)
        if total_tokens(compressed) > target_tokens:
            compressed = compress_importance_based(compressed, target_tokens)
        return compressed

    logger.warning(f"Unknown compression strategy {strategy!r}, truncating to fit")
    return compress_to_fit(messages, target_tokens)
