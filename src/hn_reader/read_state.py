from __future__ import annotations

import json
import logging
from typing import Dict, Iterator, List

from .config import MAX_READ_STORIES, READ_STORIES_KEY
from .storage import KeyValueStore

logger = logging.getLogger("hn_reader")


class ReadStateStore:
    """Bounded, persisted set of story ids the user has opened.

    Eviction is by insertion order: once ``capacity`` ids are held, adding a
    new one drops the oldest-inserted id. Adding an id that is already held
    does not move it. Every insertion is written through to ``store``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = READ_STORIES_KEY,
        capacity: int = MAX_READ_STORIES,
    ):
        self.store = store
        self.key = key
        self.capacity = capacity
        # dict keeps insertion order; values unused
        self._ids: Dict[int, None] = {}
        self.load()

    def load(self) -> None:
        """Read persisted ids; unreadable or corrupt state resets to empty."""
        self._ids = {}
        raw = self.store.get(self.key)
        if not raw:
            return
        try:
            ids = json.loads(raw)
            if not isinstance(ids, list):
                raise ValueError(f"expected a JSON array, got {type(ids).__name__}")
            for story_id in ids:
                if isinstance(story_id, bool) or not isinstance(story_id, int):
                    raise ValueError(f"invalid story id {story_id!r}")
                self._ids[story_id] = None
        except ValueError as e:
            logger.warning("Discarding corrupt read state under %s: %s", self.key, e)
            self._ids = {}
            return
        self._trim()

    def add(self, story_id: int) -> bool:
        """Record ``story_id`` as read. Returns False when it was already recorded."""
        if story_id in self._ids:
            return False
        self._ids[story_id] = None
        self._trim()
        self._save()
        return True

    def _trim(self) -> None:
        while len(self._ids) > self.capacity:
            oldest = next(iter(self._ids))
            del self._ids[oldest]

    def _save(self) -> None:
        try:
            self.store.set(self.key, json.dumps(list(self._ids)))
        except (IOError, OSError) as e:
            logger.error("Failed to persist read state: %s", e)

    def clear(self) -> None:
        self._ids = {}
        self.store.clear(self.key)

    def ids(self) -> List[int]:
        return list(self._ids)

    def __contains__(self, story_id: object) -> bool:
        return story_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._ids))
