"""Memory classifiers: decide what in a message is worth remembering.

Two interchangeable strategies behind the Classifier protocol:
- KeywordClassifier: deterministic heuristics, no network
- LLMClassifier: asks a cheap model via LiteLLM for structured JSON
"""

import json
import re
from typing import Any, Protocol, runtime_checkable

import litellm
from litellm import acompletion

from mnemo.core.logging import get_logger
from mnemo.memory.base import LONG_TERM_TYPES, ConsolidatedMemory, ConsolidationType

logger = get_logger("memory.classifier")

litellm.suppress_debug_info = True

EXTRACTION_PROMPT = """You are the part of the brain that estimates what information is important enough to remember.
Evaluate the incoming message and decide what should be stored for future recall.

Categories:
- fact: personal information or factual statements worth remembering
- preference: likes, dislikes, opinions that define the person
- decision: important choices, commitments, plans
- event: significant happenings or milestones
- learning: new knowledge, insights, lessons

Only include information that is explicitly stated or clearly implied, has value for
future conversations, and is not trivial.

Return a JSON array. Each item:
- type: "fact" | "preference" | "decision" | "event" | "learning"
- content: the information to remember (concise)
- importance: 0-1 (0.7+ very important, 0.5-0.7 moderately important)
- shouldSaveToLongTerm: true for facts/preferences/learnings, false for events/decisions
- structuredData: optional fields for recall, e.g. {"name": "alex", "field": "name"}

Examples:
- "remember my name is alex" -> [{"type": "preference", "content": "name is alex", "importance": 0.9, "shouldSaveToLongTerm": true, "structuredData": {"name": "alex", "field": "name"}}]
- "I like coffee" -> [{"type": "preference", "content": "likes coffee", "importance": 0.7, "shouldSaveToLongTerm": true}]
- "hello" -> []

Return ONLY a valid JSON array, no other text."""

_FENCE_RE = re.compile(r"```(?:json)?\s*(\[.*?\])\s*```", re.DOTALL)

# Explicit requests to remember something
_MEMORY_CUES = ("remember", "don't forget", "do not forget", "note that", "keep in mind")
# Statements about the person
_PERSONAL_CUES = (
    "my name", "i am ", "i'm ", "i live", "i work", "prefer", "favorite", "favourite",
    "i like", "i love", "i hate", "i learned",
)
_EMPHASIS_CUES = ("always", "never", "important", "must", "deadline")


@runtime_checkable
class Classifier(Protocol):
    """Turns a message into zero or more classified memories."""

    async def classify(self, text: str, context: str | None = None) -> list[ConsolidatedMemory]:
        ...


def categorize_memory(content: str) -> ConsolidationType:
    """Keyword categorization; first matching rule wins, fact by default."""
    lower = content.lower()

    if "prefer" in lower or "like" in lower or "favorite" in lower:
        return ConsolidationType.PREFERENCE
    if "decide" in lower or "choose" in lower or "will" in lower:
        return ConsolidationType.DECISION
    if "happened" in lower or "event" in lower or "occurred" in lower:
        return ConsolidationType.EVENT
    if "learned" in lower or "understand" in lower or "realized" in lower:
        return ConsolidationType.LEARNING
    return ConsolidationType.FACT


def score_message_importance(text: str) -> float:
    """Heuristic importance of a single message (0-1)."""
    lower = text.lower()
    score = 0.3

    length = len(text)
    if length >= 200:
        score += 0.2
    elif length >= 80:
        score += 0.1

    if any(cue in lower for cue in _MEMORY_CUES):
        score += 0.3
    if any(cue in lower for cue in _PERSONAL_CUES):
        score += 0.2
    score += 0.05 * sum(1 for cue in _EMPHASIS_CUES if cue in lower)

    return min(score, 1.0)


class KeywordClassifier:
    """Heuristic classifier; used when no LLM is configured."""

    def __init__(self, min_importance: float = 0.4, min_length: int = 10):
        self.min_importance = min_importance
        self.min_length = min_length

    async def classify(self, text: str, context: str | None = None) -> list[ConsolidatedMemory]:
        content = " ".join(text.split())
        if len(content) < self.min_length:
            return []

        importance = score_message_importance(content)
        if importance < self.min_importance:
            return []

        memory_type = categorize_memory(content)
        return [
            ConsolidatedMemory(
                content=content,
                type=memory_type,
                importance=importance,
                should_save_to_long_term=importance > 0.7 and memory_type in LONG_TERM_TYPES,
            )
        ]


def _coerce_item(item: Any) -> ConsolidatedMemory | None:
    if not isinstance(item, dict):
        return None
    try:
        memory_type = ConsolidationType(item.get("type"))
    except ValueError:
        return None
    content = item.get("content")
    importance = item.get("importance")
    long_term = item.get("shouldSaveToLongTerm", item.get("should_save_to_long_term"))
    if not isinstance(content, str) or not content.strip():
        return None
    if isinstance(importance, bool) or not isinstance(importance, (int, float)):
        return None
    if not isinstance(long_term, bool):
        return None
    structured = item.get("structuredData")
    return ConsolidatedMemory(
        content=content.strip(),
        type=memory_type,
        importance=min(max(float(importance), 0.0), 1.0),
        should_save_to_long_term=long_term,
        structured_data=structured if isinstance(structured, dict) else None,
    )


def parse_extraction_response(content: str) -> list[ConsolidatedMemory]:
    """Parse a model reply into memories; malformed replies yield []."""
    content = content.strip()
    match = _FENCE_RE.search(content)
    payload = match.group(1) if match else content

    try:
        items = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning(f"Extraction reply is not JSON: {e}")
        return []

    if not isinstance(items, list):
        return []

    return [m for m in (_coerce_item(item) for item in items) if m is not None]


class LLMClassifier:
    """LiteLLM-backed extraction with a low-temperature JSON reply."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 500,
        temperature: float = 0.3,
        api_key: str | None = None,
        api_base: str | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.api_key = api_key
        self.api_base = api_base

    async def classify(self, text: str, context: str | None = None) -> list[ConsolidatedMemory]:
        user_content = f"Context: {context}\n\nUser message: {text}" if context else text
        params: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": EXTRACTION_PROMPT},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if self.api_key:
            params["api_key"] = self.api_key
        if self.api_base:
            params["api_base"] = self.api_base

        try:
            response = await acompletion(**params)
            reply = response.choices[0].message.content or ""
        except Exception as e:
            logger.warning(f"Memory extraction call failed: {e}")
            return []

        return parse_extraction_response(reply)


def create_classifier(kind: str, model: str = "gpt-4o-mini") -> Classifier:
    """Build the configured classifier strategy."""
    if kind == "llm":
        return LLMClassifier(model=model)
    return KeywordClassifier()
