"""Render stored memory into the context block injected into prompts."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from memory_store import ConversationRecord, MemoryFact

DEFAULT_WINDOW = 5
HISTORY_HEADER = "Recent conversation history:"
FACTS_HEADER = "User preferences and memories:"


def build_memory_context(
    recent_conversations: Sequence[ConversationRecord],
    facts: Iterable[MemoryFact],
    *,
    window: int = DEFAULT_WINDOW,
) -> str:
    """Return the context block for a user's recent history and facts.

    ``recent_conversations`` is expected most-recent-first, as the store
    returns it. Only the newest ``window`` records are kept and they are
    rendered oldest-first. Empty sections are left out entirely, so no
    history and no facts yields an empty string.
    """
    sections: List[str] = []

    history = list(recent_conversations[:window])
    if history:
        lines = [HISTORY_HEADER]
        for record in reversed(history):
            lines.append(f"User: {record.message}")
            lines.append(f"Assistant: {record.response}")
        sections.append("\n".join(lines))

    fact_lines = [f"{fact.key}: {fact.value}" for fact in facts]
    if fact_lines:
        sections.append("\n".join([FACTS_HEADER, *fact_lines]))

    return "\n\n".join(sections)


def build_prompt(system_prompt: str, context: str, message: str, *, assistant_label: Optional[str] = None) -> str:
    """Join the persona preamble, the context block and the new user turn."""
    parts = [system_prompt.strip()]
    if context:
        parts.append(context)
    parts.append(f"User: {message}\n{assistant_label or 'Assistant'}:")
    return "\n\n".join(parts)
