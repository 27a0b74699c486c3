from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict
from typing import Any, Dict, List

from .config import FAVORITES_KEY
from .datamodels import Story
from .storage import KeyValueStore

logger = logging.getLogger("hn_reader")

# Per-session flags are not worth saving with a favorite.
_TRANSIENT_FIELDS = ("is_new", "is_read", "is_translating", "is_article_translating")


class FavoritesStore:
    """Saved stories, newest first, as ``[{"story": {...}, "savedAt": ms}]``."""

    def __init__(self, store: KeyValueStore, key: str = FAVORITES_KEY):
        self.store = store
        self.key = key

    def load(self) -> List[Dict[str, Any]]:
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning("Discarding corrupt favorites under %s", self.key)
            return []
        if not isinstance(items, list):
            return []
        return [i for i in items if isinstance(i, dict) and isinstance(i.get("story"), dict)]

    def _save(self, items: List[Dict[str, Any]]) -> None:
        try:
            self.store.set(self.key, json.dumps(items))
        except (IOError, OSError) as e:
            logger.error("Failed to save favorites: %s", e)

    def is_favorited(self, story_id: int) -> bool:
        return any(item["story"].get("id") == story_id for item in self.load())

    def add(self, story: Story) -> None:
        items = self.load()
        if any(item["story"].get("id") == story.id for item in items):
            return
        saved = asdict(story)
        for name in _TRANSIENT_FIELDS:
            saved.pop(name, None)
        items.insert(0, {"story": saved, "savedAt": int(time.time() * 1000)})
        self._save(items)

    def remove(self, story_id: int) -> None:
        items = [item for item in self.load() if item["story"].get("id") != story_id]
        self._save(items)

    def toggle(self, story: Story) -> bool:
        """Add or remove ``story``; returns the new favorited state."""
        if self.is_favorited(story.id):
            self.remove(story.id)
            return False
        self.add(story)
        return True

    def stories(self) -> List[Story]:
        return [Story.from_update(item["story"]) for item in self.load() if "id" in item["story"]]
