"""Render retrieved typed memories for LLM prompts."""

import json

from mnemo.memory.base import (
    BaseMemory,
    EpisodicMemory,
    MemoryRetrievalResult,
    ProceduralMemory,
    SemanticMemory,
)


def format_memory(memory: BaseMemory) -> str:
    if isinstance(memory, SemanticMemory):
        prefix = f"{memory.category}: " if memory.category else ""
        return f"[Semantic] {prefix}{memory.fact}"
    if isinstance(memory, EpisodicMemory):
        return f"[Episodic] {memory.event}: {memory.context.what}"
    if isinstance(memory, ProceduralMemory):
        return f"[Procedural] {memory.pattern}: {memory.action}"
    return f"[{memory.type.value}] {json.dumps(memory.to_dict(), ensure_ascii=False)}"


def format_memories_for_prompt(result: MemoryRetrievalResult) -> str:
    if not result.memories:
        return ""
    lines = "\n".join(format_memory(m) for m in result.memories)
    return f"\n\n## Relevant Memories\n{lines}"
