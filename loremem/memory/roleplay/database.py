"""SQLite persistence for the in-process memory backend.

Records are appended with their embedding and never updated. Every read is
scoped by an exact ``container_tag`` match.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Sequence

from .filters import matches_filter


@dataclass
class MemorySearchResult:
    id: str
    container_tag: str
    content: str
    metadata: Mapping[str, Any]
    score: float

    def to_payload(self) -> Mapping[str, Any]:
        return {
            "id": self.id,
            "memory": self.content,
            "metadata": dict(self.metadata),
            "score": self.score,
        }


class MemoryDatabase:
    """Small SQLite wrapper storing container-scoped memory records."""

    def __init__(self, db_path: str = ":memory:") -> None:
        self.connection = sqlite3.connect(db_path, check_same_thread=False)
        self.connection.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._create_schema()

    def _create_schema(self) -> None:
        with self._lock:
            cur = self.connection.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS memories (
                    id TEXT PRIMARY KEY,
                    container_tag TEXT NOT NULL,
                    content TEXT NOT NULL,
                    embedding BLOB,
                    metadata TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_memories_container_tag
                ON memories(container_tag)
                """
            )
            self.connection.commit()

    @staticmethod
    def _serialize_vector(vector: Optional[Sequence[float]]) -> Optional[bytes]:
        if vector is None:
            return None
        return json.dumps([float(x) for x in vector]).encode("utf-8")

    @staticmethod
    def _deserialize_vector(blob: Optional[bytes]) -> Optional[List[float]]:
        if blob is None:
            return None
        return [float(x) for x in json.loads(blob.decode("utf-8"))]

    def add_memory(
        self,
        *,
        container_tag: str,
        content: str,
        embedding: Optional[Sequence[float]] = None,
        metadata: Optional[Mapping[str, object]] = None,
    ) -> str:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            memory_id = str(uuid.uuid4())
            self.connection.execute(
                """
                INSERT INTO memories(id, container_tag, content, embedding, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    memory_id,
                    container_tag,
                    content,
                    self._serialize_vector(embedding),
                    json.dumps(metadata or {}, ensure_ascii=False),
                    now,
                ),
            )
            self.connection.commit()
            return memory_id

    def count(self, container_tag: str) -> int:
        with self._lock:
            cur = self.connection.execute(
                "SELECT COUNT(*) FROM memories WHERE container_tag = ?",
                (container_tag,),
            )
            return int(cur.fetchone()[0])

    @staticmethod
    def _cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
        if not vec1 or not vec2:
            return 0.0
        dot = sum(a * b for a, b in zip(vec1, vec2))
        norm1 = sum(a * a for a in vec1) ** 0.5
        norm2 = sum(b * b for b in vec2) ** 0.5
        if norm1 == 0 or norm2 == 0:
            return 0.0
        return dot / (norm1 * norm2)

    def search(
        self,
        *,
        container_tag: str,
        embedding: Sequence[float],
        top_k: int = 5,
        predicate: Optional[Mapping[str, Any]] = None,
    ) -> List[MemorySearchResult]:
        with self._lock:
            cur = self.connection.execute(
                "SELECT * FROM memories WHERE container_tag = ? ORDER BY created_at ASC",
                (container_tag,),
            )
            rows = cur.fetchall()

        scored: List[MemorySearchResult] = []
        for row in rows:
            metadata = json.loads(row["metadata"]) if row["metadata"] else {}
            if not matches_filter(metadata, predicate):
                continue
            vector = self._deserialize_vector(row["embedding"])
            score = self._cosine_similarity(embedding, vector) if vector is not None else 0.0
            scored.append(
                MemorySearchResult(
                    id=row["id"],
                    container_tag=row["container_tag"],
                    content=row["content"],
                    metadata=metadata,
                    score=score,
                )
            )
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[:top_k]

    def close(self) -> None:
        self.connection.close()


__all__ = ["MemoryDatabase", "MemorySearchResult"]
