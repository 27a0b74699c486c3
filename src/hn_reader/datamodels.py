from __future__ import annotations

import time
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

# Wire (camelCase) key -> Story attribute
STORY_WIRE_FIELDS: Dict[str, str] = {
    "id": "id",
    "title": "title",
    "by": "by",
    "score": "score",
    "time": "time",
    "url": "url",
    "descendants": "descendants",
    "type": "type",
    "translatedTitle": "translated_title",
    "isTranslating": "is_translating",
    "hasTranslatedArticle": "has_translated_article",
    "articleStatus": "article_status",
    "isArticleTranslating": "is_article_translating",
    "isNew": "is_new",
    "isRead": "is_read",
    "hnRank": "hn_rank",
}

# A partial update: attribute name -> value, always carrying "id".
StoryUpdate = Dict[str, Any]


# --- Data models ---
@dataclass(frozen=True)
class Story:
    id: int
    title: str = ""
    by: str = ""
    score: int = 0
    time: int = 0
    url: Optional[str] = None
    descendants: Optional[int] = None
    type: Optional[str] = None
    translated_title: Optional[str] = None
    is_translating: bool = False
    has_translated_article: bool = False
    article_status: Optional[str] = None
    is_article_translating: bool = False
    is_new: bool = False
    is_read: bool = False
    hn_rank: Optional[int] = None

    @property
    def display_title(self) -> str:
        return self.translated_title or self.title

    def merge(self, update: Mapping[str, Any]) -> "Story":
        """Return a copy with the supplied fields overridden; ``id`` never changes."""
        changes = {k: v for k, v in update.items() if k != "id" and k in _STORY_ATTRS}
        if not changes:
            return self
        return replace(self, **changes)

    @classmethod
    def from_update(cls, update: Mapping[str, Any]) -> "Story":
        return cls(**{k: v for k, v in update.items() if k in _STORY_ATTRS})

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Story":
        return cls.from_update(story_fields(payload))


_STORY_ATTRS = frozenset(f.name for f in fields(Story))


def story_fields(payload: Mapping[str, Any]) -> StoryUpdate:
    """Convert a wire story into a partial update holding only the keys that were sent."""
    if "id" not in payload:
        raise ValueError("story payload has no id")
    update: StoryUpdate = {}
    for key, value in payload.items():
        attr = STORY_WIRE_FIELDS.get(key)
        if attr is None:
            continue
        # JSON null for a flag means "not set"
        if value is None and attr.startswith(("is_", "has_")):
            value = False
        update[attr] = value
    if not _is_int(update["id"]):
        raise ValueError(f"story id must be an integer, got {update['id']!r}")
    rank = update.get("hn_rank")
    if rank is not None and not _is_int(rank):
        raise ValueError(f"hnRank must be an integer, got {rank!r}")
    return update


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class CachedArticle:
    id: int
    title: str
    content: str
    original_url: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    tldr: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "CachedArticle":
        """Build from a backend article-translation record."""
        return cls(
            id=record["story_id"],
            title=record.get("title_snapshot") or "",
            content=record.get("content_markdown") or "",
            original_url=record.get("original_url"),
            timestamp=record.get("updated_at") or time.time(),
            tldr=record.get("tldr"),
        )


class LoadingState(Enum):
    IDLE = "idle"
    LOADING_STORIES = "loading_stories"
    ERROR = "error"


@dataclass(frozen=True)
class ArticleReadyNotice:
    story_id: int
    title: str


@dataclass(frozen=True)
class ErrorNotice:
    title: str
    error_message: str
    error_code: Optional[int] = None


@dataclass(frozen=True)
class Notifications:
    article_ready: Optional[ArticleReadyNotice] = None
    error: Optional[ErrorNotice] = None
    translating_count: Optional[int] = None


@dataclass(frozen=True)
class StoriesPage:
    stories: list
    last_updated_at: Optional[int] = None
    untranslated_count: int = 0
