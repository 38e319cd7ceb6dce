"""Turn a conversation into consolidated memories and Markdown sections."""

from mnemo.memory.base import LONG_TERM_TYPES, ConsolidatedMemory, ConsolidationType
from mnemo.memory.classifier import categorize_memory
from mnemo.sleep.summarizer import calculate_importance
from mnemo.sleep.types import ContextMessage

SUMMARY_IMPORTANCE = 0.7
MIN_IMPORTANCE = 0.4
LONG_TERM_IMPORTANCE = 0.7
MIN_ASSISTANT_TOKENS = 50
SUBSTANTIAL_ASSISTANT_TOKENS = 100
MAX_TOPICS = 10

# Section order in both daily and long-term output
TYPE_ORDER = (
    ConsolidationType.FACT,
    ConsolidationType.PREFERENCE,
    ConsolidationType.DECISION,
    ConsolidationType.EVENT,
    ConsolidationType.LEARNING,
)


def process_conversation(messages: list[ContextMessage]) -> tuple[list[ContextMessage], str]:
    """Pick out the messages worth consolidating and summarize the topics.

    Returns:
        (important messages, conversation summary)
    """
    important = [
        m
        for m in messages
        if m.role in ("user", "tool")
        or (m.role == "assistant" and m.tokens > SUBSTANTIAL_ASSISTANT_TOKENS)
    ]
    return important, create_conversation_summary(messages)


def create_conversation_summary(messages: list[ContextMessage]) -> str:
    topics = []
    for message in [m for m in messages if m.role == "user"][:MAX_TOPICS]:
        content = message.content.strip()
        if 20 < len(content) < 200:
            topics.append(content)

    if not topics:
        return f"Processed {len(messages)} messages in conversation."
    listed = "\n".join(f"{i}. {topic}" for i, topic in enumerate(topics, start=1))
    return f"Recent conversation topics:\n{listed}"


def consolidate_memories(
    messages: list[ContextMessage], conversation_summary: str
) -> list[ConsolidatedMemory]:
    """Classify eligible messages, most important first.

    The conversation summary always comes along as a daily-log event.
    """
    memories = [
        ConsolidatedMemory(
            content=conversation_summary,
            type=ConsolidationType.EVENT,
            importance=SUMMARY_IMPORTANCE,
            should_save_to_long_term=False,
        )
    ]

    total = len(messages)
    for index, message in enumerate(messages):
        if message.compressed:
            continue
        if not (
            message.role == "user"
            or (message.role == "assistant" and message.tokens > MIN_ASSISTANT_TOKENS)
        ):
            continue

        importance = calculate_importance(message, index, total)
        if importance <= MIN_IMPORTANCE:
            continue

        memory_type = categorize_memory(message.content)
        memories.append(
            ConsolidatedMemory(
                content=message.content,
                type=memory_type,
                importance=importance,
                should_save_to_long_term=(
                    importance > LONG_TERM_IMPORTANCE and memory_type in LONG_TERM_TYPES
                ),
            )
        )

    memories.sort(key=lambda m: m.importance, reverse=True)
    return memories


def _format_sections(memories: list[ConsolidatedMemory], heading: str) -> str:
    sections: list[str] = []
    for memory_type in TYPE_ORDER:
        group = [m for m in memories if m.type == memory_type]
        if not group:
            continue
        sections.append(f"{heading} {memory_type.value.capitalize()}s")
        sections.extend(f"- {m.content}" for m in group)
    return "\n\n".join(sections)


def format_memories_for_daily_log(memories: list[ConsolidatedMemory]) -> str:
    return _format_sections([m for m in memories if not m.should_save_to_long_term], "###")


def format_memories_for_long_term(memories: list[ConsolidatedMemory]) -> str:
    return _format_sections([m for m in memories if m.should_save_to_long_term], "##")
