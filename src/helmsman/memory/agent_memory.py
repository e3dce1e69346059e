"""Agent Memory - Conversation history, expiring context, long-term facts, snapshots."""

import json
import time
from collections import deque
from typing import Any, Callable

import structlog

from helmsman.core.config import Config
from helmsman.core.interfaces import ISettingsStore
from helmsman.core.types import (
    ContextEntry,
    ConversationEntry,
    ConversationRole,
    MemorySnapshot,
)


logger = structlog.get_logger()


LONG_TERM_KEY = "long_term_memory"


class AgentMemory:
    """Layered memory for one agent.

    - Conversation: bounded, system entries are never evicted
    - Context: short-term key/value scratchpad with per-entry TTL
    - Long-term: unbounded key/value facts, persisted through a settings store
    - Snapshots: ring buffer of observed screen states
    """

    def __init__(
        self,
        config: Config | None = None,
        store: ISettingsStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize memory.

        Args:
            config: Application configuration (memory bounds)
            store: Optional persistence for long-term memory
            clock: Wall-clock time source in seconds
        """
        self.config = config or Config()
        self._store = store
        self._clock = clock

        self._conversation: list[ConversationEntry] = []
        self._context: dict[str, ContextEntry] = {}
        self._long_term: dict[str, Any] = self._load_long_term()
        self._snapshots: deque[MemorySnapshot] = deque(maxlen=self.config.max_snapshots)

    # Conversation history

    def add_entry(self, entry: ConversationEntry) -> None:
        """Append an entry, trimming when the history grows past its bound."""
        self._conversation.append(entry)

        if len(self._conversation) > self.config.max_conversation_length:
            keep = self.config.conversation_keep_recent
            recent = self._conversation[-keep:] if keep > 0 else []
            older = self._conversation[: len(self._conversation) - len(recent)]
            system = [e for e in older if e.role == ConversationRole.SYSTEM]
            self._conversation = system + recent
            logger.debug(
                "conversation_trimmed",
                kept=len(self._conversation),
                system_entries=len(system),
            )

    def add_message(
        self,
        role: ConversationRole,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> ConversationEntry:
        """Convenience wrapper stamping the entry with the memory clock."""
        entry = ConversationEntry(
            role=role, content=content, timestamp=self._clock(), metadata=metadata
        )
        self.add_entry(entry)
        return entry

    def get_recent_history(self, count: int = 10) -> list[ConversationEntry]:
        if count <= 0:
            return []
        return list(self._conversation[-count:])

    def get_formatted_history(self, count: int | None = None) -> str:
        entries = self.get_recent_history(count) if count else self._conversation
        return "\n".join(
            f"[{entry.role.value.capitalize()}]: {entry.content}" for entry in entries
        )

    def search_history(self, query: str) -> list[ConversationEntry]:
        """Case-insensitive substring search over entry content."""
        needle = query.lower()
        return [e for e in self._conversation if needle in e.content.lower()]

    def clear_history(self) -> None:
        self._conversation = []

    @property
    def conversation(self) -> list[ConversationEntry]:
        return list(self._conversation)

    # Short-term context

    def set_context(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Set a context value that expires after ttl seconds."""
        ttl = self.config.context_ttl if ttl is None else ttl
        self._context[key] = ContextEntry(
            key=key, value=value, expires_at=self._clock() + ttl
        )

    def get_context(self, key: str) -> Any:
        self._sweep_expired_context()
        entry = self._context.get(key)
        return entry.value if entry else None

    def get_all_context(self) -> dict[str, Any]:
        self._sweep_expired_context()
        return {key: entry.value for key, entry in self._context.items()}

    def _sweep_expired_context(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, entry in self._context.items()
            if entry.expires_at is not None and entry.expires_at <= now
        ]
        for key in expired:
            del self._context[key]

    # Long-term memory

    def remember(self, key: str, value: Any) -> None:
        self._long_term[key] = value
        self._save_long_term()

    def recall(self, key: str, default: Any = None) -> Any:
        return self._long_term.get(key, default)

    def has_memory(self, key: str) -> bool:
        return key in self._long_term

    def forget(self, key: str) -> None:
        if key in self._long_term:
            del self._long_term[key]
            self._save_long_term()

    def _load_long_term(self) -> dict[str, Any]:
        if self._store is None:
            return {}
        data = self._store.get(LONG_TERM_KEY, {})
        if not isinstance(data, dict):
            logger.warning("long_term_memory_invalid", type=type(data).__name__)
            return {}
        return dict(data)

    def _save_long_term(self) -> None:
        if self._store is None:
            return
        self._store.set(LONG_TERM_KEY, dict(self._long_term))

    # Screen snapshots

    def add_snapshot(self, snapshot: MemorySnapshot) -> None:
        """Append a snapshot; the oldest is evicted once the buffer is full."""
        self._snapshots.append(snapshot)

    def get_recent_snapshots(self, count: int = 5) -> list[MemorySnapshot]:
        if count <= 0:
            return []
        return list(self._snapshots)[-count:]

    def find_snapshot_near(self, timestamp: float) -> MemorySnapshot | None:
        """Snapshot closest in time to timestamp; ties go to the earliest inserted."""
        closest: MemorySnapshot | None = None
        closest_diff = 0.0
        for snapshot in self._snapshots:
            diff = abs(snapshot.timestamp - timestamp)
            if closest is None or diff < closest_diff:
                closest = snapshot
                closest_diff = diff
        return closest

    # Summaries

    def get_summary(self) -> str:
        """Short text summary of recent activity and live context."""
        lines = ["Recent Activity:"]
        for entry in self.get_recent_history(10):
            if entry.role == ConversationRole.USER:
                lines.append(f"- User requested: {entry.content[:100]}")
            elif entry.metadata and entry.metadata.get("action"):
                lines.append(f"- Executed: {entry.metadata['action']}")

        context = self.get_all_context()
        if context:
            lines.append("")
            lines.append("Current Context:")
            for key, value in context.items():
                lines.append(f"- {key}: {json.dumps(value, default=str)[:50]}")

        return "\n".join(lines)

    def clear(self) -> None:
        """Clear conversation, context and snapshots; long-term memory stays."""
        self._conversation = []
        self._context.clear()
        self._snapshots.clear()

    def export(self) -> dict[str, Any]:
        """Full dump for diagnostics."""
        return {
            "conversation_history": [e.model_dump() for e in self._conversation],
            "short_term_memory": [
                e.model_dump() for e in self._context.values()
            ],
            "long_term_memory": dict(self._long_term),
            "snapshots": [s.model_dump() for s in self._snapshots],
        }
