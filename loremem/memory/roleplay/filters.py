"""Translate high-level filter requests into backend filter predicates."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .schemas import GameTime

FilterPredicate = Dict[str, List[Dict[str, Any]]]

GTE = "gte"
LTE = "lte"
EQ = "eq"


def _condition(key: str, operator: str, value: Any) -> Dict[str, Any]:
    return {"key": key, "operator": operator, "value": value}


def build_filter(
    *,
    game_time_gte: Optional[GameTime] = None,
    game_time_lte: Optional[GameTime] = None,
    memory_type: Optional[str] = None,
) -> Optional[FilterPredicate]:
    """AND together whichever conditions are given.

    Omitted conditions do not appear in the predicate, and ``None`` is
    returned when nothing is requested so that no filter is sent at all.
    """

    if game_time_gte is not None and game_time_lte is not None and game_time_gte > game_time_lte:
        raise ValueError(
            f"Empty game time range: gte={game_time_gte} is greater than lte={game_time_lte}"
        )

    conditions: List[Dict[str, Any]] = []
    if game_time_gte is not None:
        conditions.append(_condition("gameTime", GTE, game_time_gte))
    if game_time_lte is not None:
        conditions.append(_condition("gameTime", LTE, game_time_lte))
    if memory_type is not None:
        conditions.append(_condition("type", EQ, memory_type))
    if not conditions:
        return None
    return {"AND": conditions}


def _matches(condition: Mapping[str, Any], metadata: Mapping[str, Any]) -> bool:
    key = condition.get("key")
    operator = condition.get("operator", EQ)
    expected = condition.get("value")
    actual = metadata.get(str(key))
    if operator == EQ:
        return actual == expected
    if not isinstance(actual, (int, float)) or isinstance(actual, bool):
        return False
    if operator == GTE:
        return actual >= expected
    if operator == LTE:
        return actual <= expected
    raise ValueError(f"Unsupported filter operator '{operator}'")


def matches_filter(metadata: Mapping[str, Any], predicate: Optional[Mapping[str, Any]]) -> bool:
    """Evaluate ``predicate`` against a record's wire-format metadata."""

    if not predicate:
        return True
    return all(_matches(condition, metadata) for condition in predicate.get("AND", []))


__all__ = ["FilterPredicate", "build_filter", "matches_filter"]
