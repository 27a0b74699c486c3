from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .datamodels import StoryUpdate, story_fields
from .errors import MalformedEventError


# --- Push events ---
@dataclass(frozen=True)
class Connected:
    type = "connected"


@dataclass(frozen=True)
class StoriesUpdated:
    stories: List[StoryUpdate] = field(default_factory=list)
    last_updated_at: Optional[int] = None
    type = "stories.updated"


@dataclass(frozen=True)
class ArticleDone:
    story_id: int
    title: str
    content: str
    original_url: Optional[str] = None
    story: Optional[StoryUpdate] = None
    type = "article.done"


@dataclass(frozen=True)
class ArticleError:
    story_id: int
    title: str
    error_message: Optional[str] = None
    type = "article.error"


Event = Union[Connected, StoriesUpdated, ArticleDone, ArticleError]


def _require(data: Dict[str, Any], key: str, frame: str) -> Any:
    if data.get(key) is None:
        raise MalformedEventError(f"{data.get('type')} event is missing '{key}'", frame)
    return data[key]


def _story_id(data: Dict[str, Any], frame: str) -> int:
    story_id = _require(data, "storyId", frame)
    if isinstance(story_id, bool) or not isinstance(story_id, int):
        raise MalformedEventError(f"invalid storyId {story_id!r}", frame)
    return story_id


def _story_update(item: Any, frame: str) -> StoryUpdate:
    if not isinstance(item, dict):
        raise MalformedEventError("story payload is not an object", frame)
    try:
        return story_fields(item)
    except ValueError as e:
        raise MalformedEventError(f"invalid story: {e}", frame) from e


def _decode_stories_updated(data: Dict[str, Any], frame: str) -> StoriesUpdated:
    raw = data.get("stories")
    stories: List[StoryUpdate] = []
    if isinstance(raw, list):
        stories = [_story_update(item, frame) for item in raw]
    return StoriesUpdated(stories=stories, last_updated_at=data.get("lastUpdatedAt"))


def _decode_article_done(data: Dict[str, Any], frame: str) -> ArticleDone:
    raw_story = data.get("story")
    story = _story_update(raw_story, frame) if isinstance(raw_story, dict) and "id" in raw_story else None
    return ArticleDone(
        story_id=_story_id(data, frame),
        title=data.get("title") or "",
        content=_require(data, "content", frame),
        original_url=data.get("originalUrl"),
        story=story,
    )


def _decode_article_error(data: Dict[str, Any], frame: str) -> ArticleError:
    return ArticleError(
        story_id=_story_id(data, frame),
        title=data.get("title") or "",
        error_message=data.get("errorMessage"),
    )


_DECODERS = {
    "connected": lambda data, frame: Connected(),
    "stories.updated": _decode_stories_updated,
    "article.done": _decode_article_done,
    "article.error": _decode_article_error,
}


def decode_event(frame: str) -> Event:
    """Parse one JSON frame into a typed event.

    Raises MalformedEventError for bad JSON, a non-object body, an unknown
    ``type`` or missing required fields.
    """
    try:
        data = json.loads(frame)
    except ValueError as e:
        raise MalformedEventError(f"frame is not valid JSON: {e}", frame) from e
    if not isinstance(data, dict):
        raise MalformedEventError("frame is not a JSON object", frame)
    event_type = data.get("type")
    decoder = _DECODERS.get(event_type) if isinstance(event_type, str) else None
    if decoder is None:
        raise MalformedEventError(f"unknown event type {data.get('type')!r}", frame)
    return decoder(data, frame)
