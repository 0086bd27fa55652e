"""
Conversation History Module

Append-only, ordered log of the messages exchanged in a session, plus the
best-effort cache port used to survive page reloads.

The cache is never authoritative: load and save failures are logged and
ignored so a broken cache can't block the conversation.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from constants import HISTORY_CACHE_MAX_ENTRIES, RECENT_CONTEXT_SIZE
from sessions.types import Message

logger = logging.getLogger(__name__)


class HistoryCache(ABC):
    """Key-value port for the recent-history cache."""

    @abstractmethod
    def load(self, key: str) -> Optional[list[dict[str, Any]]]:
        """Return cached entries for key, or None on a miss."""

    @abstractmethod
    def save(self, key: str, entries: list[dict[str, Any]]) -> None:
        """Replace cached entries for key."""


class InMemoryHistoryCache(HistoryCache):
    def __init__(self) -> None:
        self._entries: dict[str, list[dict[str, Any]]] = {}

    def load(self, key: str) -> Optional[list[dict[str, Any]]]:
        entries = self._entries.get(key)
        return list(entries) if entries is not None else None

    def save(self, key: str, entries: list[dict[str, Any]]) -> None:
        self._entries[key] = list(entries)


class JsonFileHistoryCache(HistoryCache):
    """
    One JSON file per cache key inside ``directory``.

    Keys are sanitized into file names; writes go through a temp file and an
    atomic rename so a crash can't leave a half-written snapshot.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        safe_key = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)
        return self.directory / f"{safe_key}.json"

    def load(self, key: str) -> Optional[list[dict[str, Any]]]:
        path = self._path_for(key)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Cached history at {path} is not a list")
        return data

    def save(self, key: str, entries: list[dict[str, Any]]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(entries, f, ensure_ascii=False)
        os.replace(tmp_path, path)


class ConversationHistoryStore:
    """
    Ordered log of chat messages.

    Entries are immutable. The only in-place change allowed is attaching a
    visualization to an already-appended assistant reply, which swaps in a
    copy with the same id at the same position.
    """

    def __init__(
        self,
        cache: Optional[HistoryCache] = None,
        cache_key: str = "chat_history",
        cache_max_entries: int = HISTORY_CACHE_MAX_ENTRIES,
    ) -> None:
        self._messages: list[Message] = []
        self._index: dict[str, int] = {}
        self._cache = cache
        self.cache_key = cache_key
        self._cache_max_entries = cache_max_entries

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def get(self, message_id: str) -> Optional[Message]:
        position = self._index.get(message_id)
        return self._messages[position] if position is not None else None

    def append(self, message: Message) -> Message:
        if message.id in self._index:
            raise ValueError(f"Message id already in history: {message.id}")
        self._index[message.id] = len(self._messages)
        self._messages.append(message)
        self._persist()
        return message

    def attach_visualization(self, message_id: str, image: str) -> Message:
        """Attach a visualization image to an appended message, keeping its id and slot."""
        position = self._index.get(message_id)
        if position is None:
            raise KeyError(message_id)
        updated = replace(self._messages[position], visualization=image)
        self._messages[position] = updated
        self._persist()
        return updated

    def recent_context(self, k: int = RECENT_CONTEXT_SIZE) -> list[tuple[str, str]]:
        """
        Last k prompt-worthy entries as (role, content) pairs, oldest first.

        Artifact messages are skipped; images appear as the opaque marker.
        """
        if k <= 0:
            return []
        window: list[tuple[str, str]] = []
        for message in reversed(self._messages):
            if message.artifact:
                continue
            window.append((message.role.value, message.text))
            if len(window) == k:
                break
        window.reverse()
        return window

    def reset(self, seed: Message) -> None:
        """Replace the whole history with a single seed message."""
        self._messages = [seed]
        self._index = {seed.id: 0}
        self._persist()

    def restore(self) -> bool:
        """
        Load the cached snapshot into an empty store.

        Returns True when at least one message was restored.
        """
        if self._cache is None or self._messages:
            return False
        try:
            entries = self._cache.load(self.cache_key)
            if not entries:
                return False
            messages = [Message.from_dict(entry) for entry in entries]
        except Exception as e:
            logger.warning("Ignoring unreadable history cache '%s': %s", self.cache_key, e)
            return False

        for message in messages:
            if message.id in self._index:
                continue
            self._index[message.id] = len(self._messages)
            self._messages.append(message)
        logger.info("Restored %d cached messages for '%s'", len(self._messages), self.cache_key)
        return bool(self._messages)

    def _persist(self) -> None:
        if self._cache is None:
            return
        snapshot = [
            message.to_dict(include_image_data=False)
            for message in self._messages[-self._cache_max_entries:]
        ]
        try:
            self._cache.save(self.cache_key, snapshot)
        except Exception as e:
            logger.warning("History cache write failed for '%s': %s", self.cache_key, e)
