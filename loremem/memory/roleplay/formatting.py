"""Deterministic builders for stored content and recall query text.

Game time is embedded as literal text because the backend ranks by content
only; the structured ``gameTime`` metadata field carries the same value for
exact filtering.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence

from .prompts import (
    CHARACTER_CONTEXT_HEADER,
    CHARACTER_QUERY_INSTRUCTION,
    CONTINUITY_RULES,
    CURRENT_TIME_HEADER,
    GAME_TIME_LINE,
    MEMORY_BLOCK_SEPARATOR,
    MESSAGE_HEADER,
    MESSAGE_LINE,
    RECENT_MESSAGES_HEADER,
    ROLEPLAY_MEMORY_TAG,
    SECTION_SEPARATOR,
    WORLD_KNOWLEDGE_HEADER,
    WORLD_QUERY_INSTRUCTION,
    WORLD_STATE_UPDATE_LINE,
)
from .schemas import GameTime, RecentMessage


def render_game_time(game_time: GameTime) -> str:
    if isinstance(game_time, float) and game_time.is_integer():
        return str(int(game_time))
    return str(game_time)


def _section(header: str, body: str) -> str:
    return f"{header}\n{body}"


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def format_game_time(game_time: GameTime, interval: str) -> str:
    return GAME_TIME_LINE.format(game_time=render_game_time(game_time), interval=interval)


def format_world_message(
    speaker_name: str, content: str, game_time: GameTime, interval: str
) -> str:
    return MESSAGE_LINE.format(
        speaker_name=speaker_name,
        content=content,
        game_time=render_game_time(game_time),
        interval=interval,
    )


def format_enriched_character_message(
    game_time: GameTime,
    interval: str,
    speaker_name: str,
    content: str,
    world_knowledge: Optional[str] = None,
) -> str:
    """Build the sectioned text stored in a character container.

    The world-knowledge section is omitted, header included, when
    ``world_knowledge`` is empty or whitespace.
    """

    sections = [
        _section(CURRENT_TIME_HEADER, format_game_time(game_time, interval)),
        _section(
            MESSAGE_HEADER,
            format_world_message(speaker_name, content, game_time, interval),
        ),
    ]
    if _has_text(world_knowledge):
        sections.append(_section(WORLD_KNOWLEDGE_HEADER, str(world_knowledge)))
    return SECTION_SEPARATOR.join(sections)


def format_world_state_update(description: str, game_time: GameTime, interval: str) -> str:
    return WORLD_STATE_UPDATE_LINE.format(
        description=description,
        game_time=render_game_time(game_time),
        interval=interval,
    )


def format_recent_message(
    message: RecentMessage, current_game_time: GameTime, interval: str
) -> str:
    game_time = message.game_time if message.game_time is not None else current_game_time
    return format_world_message(message.name, message.content, game_time, interval)


def format_character_query(
    game_time: GameTime,
    interval: str,
    recent_messages: Sequence[RecentMessage],
    speaker_name: str,
) -> str:
    sections = [_section(CURRENT_TIME_HEADER, format_game_time(game_time, interval))]
    if recent_messages:
        lines = [format_recent_message(msg, game_time, interval) for msg in recent_messages]
        sections.append(_section(RECENT_MESSAGES_HEADER, "\n".join(lines)))
    sections.append(CHARACTER_QUERY_INSTRUCTION.format(speaker_name=speaker_name))
    return SECTION_SEPARATOR.join(sections)


def format_world_query(game_time: GameTime, interval: str, query: Optional[str] = None) -> str:
    instruction = query.strip() if _has_text(query) else WORLD_QUERY_INSTRUCTION
    return SECTION_SEPARATOR.join(
        [_section(CURRENT_TIME_HEADER, format_game_time(game_time, interval)), instruction]
    )


def format_memories_for_prompt(
    memories: Sequence[str],
    metadata: Optional[Sequence[Mapping[str, Any]]] = None,
) -> str:
    """Render recalled memories as numbered blocks for prompt injection."""

    if not memories:
        return ""

    blocks: List[str] = []
    for index, memory in enumerate(memories):
        meta = metadata[index] if metadata and index < len(metadata) else {}
        header = f"[Memory {index + 1}]"
        game_time = meta.get("gameTime")
        if game_time is not None:
            interval = meta.get("gameTimeInterval") or ""
            header += f"\nTime: {render_game_time(game_time)} {interval}".rstrip()
        blocks.append(f"{header}\n{memory}")

    rendered = MEMORY_BLOCK_SEPARATOR.join(blocks)
    if metadata:
        return f"{CONTINUITY_RULES}\n\n{rendered}"
    return rendered


def append_character_context(formatted: str, character_name: str, context: Optional[str]) -> str:
    if not _has_text(context):
        return formatted
    section = _section(CHARACTER_CONTEXT_HEADER.format(character_name=character_name), str(context).strip())
    if not formatted:
        return section
    return f"{formatted}{MEMORY_BLOCK_SEPARATOR}{section}"


def has_memory_tag(prompt: str) -> bool:
    return ROLEPLAY_MEMORY_TAG in prompt


def inject_memories(prompt: str, memories: str) -> str:
    return prompt.replace(ROLEPLAY_MEMORY_TAG, memories, 1)


__all__ = [
    "append_character_context",
    "format_character_query",
    "format_enriched_character_message",
    "format_game_time",
    "format_memories_for_prompt",
    "format_recent_message",
    "format_world_message",
    "format_world_query",
    "format_world_state_update",
    "has_memory_tag",
    "inject_memories",
    "render_game_time",
]
