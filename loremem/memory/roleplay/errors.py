"""Exceptions raised by the roleplay memory layer."""

from __future__ import annotations

from .schemas import (
    INVALID_CONTAINER_TAG,
    INVALID_LIMIT,
    MISSING_REQUIRED_FIELD,
    UNKNOWN_MEMORY_TYPE,
)


class MemoryValidationError(ValueError):
    """Bad input detected before any backend call."""

    reason = "validation_error"


class InvalidContainerTag(MemoryValidationError):
    reason = INVALID_CONTAINER_TAG

    def __init__(self, tag: object, expected: str) -> None:
        super().__init__(f"Invalid {expected} container tag: {tag!r}")
        self.tag = tag
        self.expected = expected


class MissingRequiredField(MemoryValidationError):
    reason = MISSING_REQUIRED_FIELD

    def __init__(self, memory_type: str, field_name: str) -> None:
        super().__init__(f"'{memory_type}' metadata requires field '{field_name}'")
        self.memory_type = memory_type
        self.field_name = field_name


class UnknownMemoryType(MemoryValidationError):
    reason = UNKNOWN_MEMORY_TYPE

    def __init__(self, memory_type: object) -> None:
        super().__init__(f"Unknown memory type: {memory_type!r}")
        self.memory_type = memory_type


class InvalidLimit(MemoryValidationError):
    reason = INVALID_LIMIT

    def __init__(self, limit: object) -> None:
        super().__init__(f"Query limit must be a positive integer, got {limit!r}")
        self.limit = limit


class MemoryBackendError(Exception):
    """The memory backend failed or answered with an unusable response."""


class MalformedResponse(MemoryBackendError):
    """The backend answered, but the payload does not match the wire format."""


__all__ = [
    "InvalidContainerTag",
    "InvalidLimit",
    "MalformedResponse",
    "MemoryBackendError",
    "MemoryValidationError",
    "MissingRequiredField",
    "UnknownMemoryType",
]
