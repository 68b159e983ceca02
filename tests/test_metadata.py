from __future__ import annotations

import pytest

from loremem.memory.roleplay import schemas
from loremem.memory.roleplay.errors import (
    InvalidContainerTag,
    InvalidLimit,
    MissingRequiredField,
    UnknownMemoryType,
)
from loremem.memory.roleplay.filters import build_filter, matches_filter
from loremem.memory.roleplay.metadata import build_metadata
from loremem.memory.roleplay.schemas import MemoryMetadata


def _message_fields(**overrides: object) -> dict:
    fields = {
        "speaker": "alice",
        "participants": ["alice", "bob"],
        "gameTime": 10,
        "gameTimeInterval": "Day",
    }
    fields.update(overrides)
    return fields


def test_message_metadata_serialises_with_wire_keys() -> None:
    metadata = build_metadata("message", _message_fields())
    assert metadata.to_payload() == {
        "type": "message",
        "speaker": "alice",
        "participants": ["alice", "bob"],
        "gameTime": 10,
        "gameTimeInterval": "Day",
    }
    assert MemoryMetadata.from_payload(metadata.to_payload()) == metadata


def test_snake_case_fields_are_accepted() -> None:
    metadata = build_metadata(
        "message",
        {"speaker": "alice", "participants": ["alice"], "game_time": 0, "game_time_interval": "Day"},
    )
    assert metadata.game_time == 0
    assert metadata.game_time_interval == "Day"


@pytest.mark.parametrize(
    "overrides, missing",
    [
        ({"gameTime": None}, "gameTime"),
        ({"gameTime": True}, "gameTime"),
        ({"participants": []}, "participants"),
        ({"speaker": "  "}, "speaker"),
        ({"gameTimeInterval": None}, "gameTimeInterval"),
    ],
)
def test_message_requires_its_fields(overrides: dict, missing: str) -> None:
    with pytest.raises(MissingRequiredField) as excinfo:
        build_metadata("message", _message_fields(**overrides))
    assert excinfo.value.field_name == missing
    assert excinfo.value.reason == "missing_required_field"


def test_character_container_message_requires_is_speaker() -> None:
    with pytest.raises(MissingRequiredField) as excinfo:
        build_metadata("message", _message_fields(), character_container=True)
    assert excinfo.value.field_name == "isSpeaker"

    metadata = build_metadata("message", _message_fields(isSpeaker=False), character_container=True)
    assert metadata.to_payload()["isSpeaker"] is False


def test_is_speaker_derived_from_container_owner() -> None:
    assert build_metadata("message", _message_fields(), container_owner="alice").is_speaker is True
    assert build_metadata("message", _message_fields(), container_owner="bob").is_speaker is False


def test_lorebook_requires_key() -> None:
    with pytest.raises(MissingRequiredField) as excinfo:
        build_metadata("lorebook", {"lorebookKey": None})
    assert excinfo.value.field_name == "lorebookKey"

    metadata = build_metadata("lorebook", {"lorebook_key": "k1"})
    assert metadata.lorebook_key == "k1"
    assert metadata.permanent is True


def test_permanent_types_cannot_be_marked_transient() -> None:
    assert build_metadata("scenario").permanent is True
    assert build_metadata("character_card", {}).to_payload() == {"type": "character_card", "permanent": True}
    with pytest.raises(MissingRequiredField):
        build_metadata("scenario", {"permanent": False})


def test_world_state_update_requires_time() -> None:
    metadata = build_metadata("world_state_update", {"gameTime": 12, "gameTimeInterval": "Day"})
    assert metadata.permanent is None
    with pytest.raises(MissingRequiredField):
        build_metadata("world_state_update", {"gameTime": 12})


def test_unknown_memory_type_is_rejected() -> None:
    with pytest.raises(UnknownMemoryType):
        build_metadata("diary", {})


def test_empty_filter_is_none() -> None:
    assert build_filter() is None


def test_filter_ands_given_conditions() -> None:
    predicate = build_filter(game_time_gte=5, game_time_lte=10, memory_type="message")
    assert predicate == {
        "AND": [
            {"key": "gameTime", "operator": "gte", "value": 5},
            {"key": "gameTime", "operator": "lte", "value": 10},
            {"key": "type", "operator": "eq", "value": "message"},
        ]
    }
    assert build_filter(game_time_lte=3) == {"AND": [{"key": "gameTime", "operator": "lte", "value": 3}]}


def test_inverted_time_range_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_filter(game_time_gte=10, game_time_lte=5)


def test_matches_filter() -> None:
    predicate = build_filter(game_time_gte=5, game_time_lte=10)
    assert matches_filter({"gameTime": 7}, predicate)
    assert matches_filter({"gameTime": 5}, predicate)
    assert not matches_filter({"gameTime": 11}, predicate)
    assert not matches_filter({"type": "scenario"}, predicate)
    assert matches_filter({"type": "scenario"}, None)
    assert matches_filter({"type": "lorebook"}, build_filter(memory_type="lorebook"))
    assert not matches_filter({"type": "message"}, build_filter(memory_type="lorebook"))


def test_error_reasons_match_result_reasons() -> None:
    assert InvalidContainerTag("x", "world").reason == schemas.INVALID_CONTAINER_TAG
    assert MissingRequiredField("message", "speaker").reason == schemas.MISSING_REQUIRED_FIELD
    assert UnknownMemoryType("diary").reason == schemas.UNKNOWN_MEMORY_TYPE
    assert InvalidLimit(0).reason == schemas.INVALID_LIMIT
