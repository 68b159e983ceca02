"""Text templates for stored memory content and recall queries.

Stored content is part of the durable contract: records written today must
parse the same way when they are read back in a later session.
"""

CURRENT_TIME_HEADER = "###Current time###"
MESSAGE_HEADER = "###Message###"
WORLD_KNOWLEDGE_HEADER = "###Newly discovered world knowledge###"
RECENT_MESSAGES_HEADER = "###Recent messages###"

GAME_TIME_LINE = "GameTime: {game_time} {interval}"
MESSAGE_LINE = "Message: {speaker_name}: {content} GameTime: {game_time} {interval}"
WORLD_STATE_UPDATE_LINE = "{description}. GameTime: {game_time} {interval}"

SECTION_SEPARATOR = "\n\n"

CHARACTER_QUERY_INSTRUCTION = (
    "What are the relevant memories that are not in the recent messages "
    "to construct {speaker_name}'s next message?"
)

WORLD_QUERY_INSTRUCTION = (
    "What are the relevant world events, state changes and messages "
    "that happened up to the current time?"
)

MEMORY_BLOCK_SEPARATOR = "\n\n---\n\n"

CONTINUITY_RULES = """
IMPORTANT - Physical Continuity Rules:
- Each memory above shows the game time when it occurred
- Time flows forward naturally - characters cannot jump back in time
- Characters can only change location through physical movement (walking, traveling, etc.)
- Do not reference memories that would require impossible teleportation or time travel
""".strip()

CHARACTER_CONTEXT_HEADER = "###Current {character_name}'s context###"

ROLEPLAY_MEMORY_TAG = "###ROLEPLAY_MEMORY###"


__all__ = [
    "CHARACTER_CONTEXT_HEADER",
    "CHARACTER_QUERY_INSTRUCTION",
    "CONTINUITY_RULES",
    "CURRENT_TIME_HEADER",
    "GAME_TIME_LINE",
    "MEMORY_BLOCK_SEPARATOR",
    "MESSAGE_HEADER",
    "MESSAGE_LINE",
    "RECENT_MESSAGES_HEADER",
    "ROLEPLAY_MEMORY_TAG",
    "SECTION_SEPARATOR",
    "WORLD_KNOWLEDGE_HEADER",
    "WORLD_QUERY_INSTRUCTION",
    "WORLD_STATE_UPDATE_LINE",
]
