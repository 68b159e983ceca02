"""Roleplay memory layer for multi-character chat sessions.

This subpackage gives every character its own long-term memory and keeps a
separate shared record of what happened in the world.  It wires together

* container tag helpers that keep character and world scopes apart,
* formatters that turn turns into sectioned, time-stamped memory text,
* metadata validation for each memory type,
* storage and retrieval services that degrade to empty results on failure, and
* session hooks that fan a turn out to all participants and recall memories
  before a character speaks.
"""

from .backends import HttpMemoryBackend, LocalMemoryBackend, MemoryBackend
from .boundary import CallState, ErrorBoundary, notify
from .clients import EmbeddingClient
from .containers import (
    create_character_container,
    create_world_container,
    is_character_container,
    is_world_container,
)
from .database import MemoryDatabase
from .errors import (
    InvalidContainerTag,
    MemoryBackendError,
    MemoryValidationError,
    MissingRequiredField,
)
from .filters import build_filter
from .manager import RoleplayMemoryManager, TurnDistribution
from .metadata import build_metadata
from .retrieval import MemoryRetrievalService
from .runtime import RoleplayMemoryRuntime, main as runtime_main
from .schemas import (
    CharacterInit,
    LorebookEntry,
    MemoryEvent,
    MemoryMetadata,
    QueryResult,
    RecentMessage,
    StorageResult,
)
from .storage import MemoryStorageService

__all__ = [
    "CallState",
    "CharacterInit",
    "EmbeddingClient",
    "ErrorBoundary",
    "HttpMemoryBackend",
    "InvalidContainerTag",
    "LocalMemoryBackend",
    "LorebookEntry",
    "MemoryBackend",
    "MemoryBackendError",
    "MemoryDatabase",
    "MemoryEvent",
    "MemoryMetadata",
    "MemoryRetrievalService",
    "MemoryStorageService",
    "MemoryValidationError",
    "MissingRequiredField",
    "QueryResult",
    "RecentMessage",
    "RoleplayMemoryManager",
    "RoleplayMemoryRuntime",
    "StorageResult",
    "TurnDistribution",
    "build_filter",
    "build_metadata",
    "create_character_container",
    "create_world_container",
    "is_character_container",
    "is_world_container",
    "notify",
    "runtime_main",
]
