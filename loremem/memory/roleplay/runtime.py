"""Runtime helpers for replaying roleplay turns through the memory layer."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from .backends import HttpMemoryBackend, LocalMemoryBackend, MemoryBackend
from .boundary import ErrorBoundary
from .clients import EmbeddingClient
from .database import MemoryDatabase
from .manager import RoleplayMemoryManager
from .schemas import RecentMessage, dumps_payload

logger = logging.getLogger(__name__)

RECENT_WINDOW = 3


@dataclass
class RoleplayMemoryRuntime:
    """Wire a backend, the services and the session hooks for one session."""

    session_id: str = "session-1"
    backend_kind: str = "local"
    db_path: str = "roleplay_memory.sqlite"
    embed_url: str = "http://localhost:1108/v1"
    embed_model: str = "Qwen3-Embedding-8B"
    embed_provider: str = "vllm"
    api_url: str = "http://localhost:8787/v1"
    api_key_env: str = "MEMORY_API_KEY"
    timeout: float = 10.0
    interval: str = "Day"
    backend: Optional[MemoryBackend] = None
    recent: List[RecentMessage] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.backend is None:
            self.backend = self._build_backend()
        self.manager = RoleplayMemoryManager.from_backend(self.backend, boundary=ErrorBoundary())

    def _build_backend(self) -> MemoryBackend:
        if self.backend_kind == "remote":
            return HttpMemoryBackend(
                base_url=self.api_url,
                api_key_env=self.api_key_env,
                timeout=self.timeout,
            )
        if self.backend_kind != "local":
            raise ValueError(f"Unsupported backend '{self.backend_kind}'")

        if self.db_path != ":memory:":
            Path(self.db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
            db_path = str(Path(self.db_path).expanduser())
        else:
            db_path = self.db_path
        embedding_client = EmbeddingClient(
            base_url=self.embed_url,
            model=self.embed_model,
            provider=self.embed_provider,
        )
        return LocalMemoryBackend(db=MemoryDatabase(db_path), embed_texts=embedding_client.embed)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def ingest_turn(self, turn: Mapping[str, Any]) -> Mapping[str, Any]:
        speaker = str(turn["speaker"])
        speaker_name = str(turn.get("speakerName") or speaker)
        game_time = turn.get("gameTime", 0)
        self.interval = str(turn.get("interval") or self.interval)
        participants = [str(item) for item in turn.get("participants") or [speaker]]

        distribution = await self.manager.distribute_turn(
            self.session_id,
            speaker_id=speaker,
            speaker_name=speaker_name,
            message=str(turn["content"]),
            game_time=game_time,
            interval=self.interval,
            participant_ids=participants,
            world_knowledge=turn.get("worldKnowledge"),
        )
        self.recent.append(
            RecentMessage(name=speaker_name, content=str(turn["content"]), game_time=game_time)
        )
        del self.recent[:-RECENT_WINDOW]
        return distribution.to_payload()

    async def recall(self, character_id: str, character_name: Optional[str] = None) -> str:
        last = self.recent[-1] if self.recent else None
        return await self.manager.recall_for_character(
            self.session_id,
            character_id,
            character_name or character_id,
            game_time=last.game_time if last and last.game_time is not None else 0,
            interval=self.interval,
            recent_messages=list(self.recent),
        )

    async def aclose(self) -> None:
        if isinstance(self.backend, HttpMemoryBackend):
            await self.backend.aclose()
        elif isinstance(self.backend, LocalMemoryBackend):
            self.backend.db.close()


def _iter_turns(stream: Iterable[str]) -> Iterable[Mapping[str, Any]]:
    for raw_line in stream:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            turn = json.loads(line)
        except json.JSONDecodeError as exc:  # pragma: no cover - CLI guard
            logger.error("Malformed JSON line: %s", line)
            raise SystemExit(1) from exc
        if not isinstance(turn, Mapping) or "speaker" not in turn or "content" not in turn:
            logger.error("Each line must include 'speaker' and 'content' fields: %s", line)
            raise SystemExit(1)
        yield turn


async def _run(runtime: RoleplayMemoryRuntime, stream: Iterable[str], recall: Optional[str]) -> List[Mapping[str, Any]]:
    results: List[Mapping[str, Any]] = []
    try:
        for turn in _iter_turns(stream):
            results.append(await runtime.ingest_turn(turn))
        if recall:
            results.append({"recall": recall, "memories": await runtime.recall(recall)})
    finally:
        await runtime.aclose()
    return results


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replay roleplay turns through the memory layer")
    parser.add_argument("--session", default="session-1", help="Session id used to derive container tags")
    parser.add_argument("--backend", choices=["local", "remote"], default="local", help="Memory backend")
    parser.add_argument("--db", default="roleplay_memory.sqlite", help="SQLite file for the local backend")
    parser.add_argument("--embed-url", default="http://localhost:1108/v1", help="Base URL of the embedding server")
    parser.add_argument("--embed-model", default="Qwen3-Embedding-8B", help="Embedding model name")
    parser.add_argument(
        "--embed-provider",
        choices=["vllm", "openai", "ollama"],
        default="vllm",
        help="Embedding provider type",
    )
    parser.add_argument("--api-url", default="http://localhost:8787/v1", help="Base URL of the remote memory API")
    parser.add_argument(
        "--api-key-env",
        default="MEMORY_API_KEY",
        help="Environment variable holding the remote memory API key",
    )
    parser.add_argument("--timeout", type=float, default=10.0, help="Remote request timeout in seconds")
    parser.add_argument(
        "--input",
        type=Path,
        help="Optional path to a JSONL file of turns. Defaults to reading from standard input.",
    )
    parser.add_argument("--recall", help="Character id to recall memories for after ingesting")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging to trace backend payloads.",
    )

    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    runtime = RoleplayMemoryRuntime(
        session_id=args.session,
        backend_kind=args.backend,
        db_path=str(args.db),
        embed_url=args.embed_url,
        embed_model=args.embed_model,
        embed_provider=args.embed_provider,
        api_url=args.api_url,
        api_key_env=args.api_key_env,
        timeout=args.timeout,
    )

    if args.input:
        with args.input.open("r", encoding="utf-8") as fh:
            results = asyncio.run(_run(runtime, list(fh), args.recall))
    else:
        results = asyncio.run(_run(runtime, sys.stdin, args.recall))

    for result in results:
        print(dumps_payload(result))

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
