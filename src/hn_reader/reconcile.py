"""Merge rules that fold push events and fetch results into local state.

Every function here runs synchronously against the objects it is given and
does no I/O beyond the read-state write-through, so each one is a single
discrete step from the event loop's point of view.

Local read flags are authoritative: an incoming payload can never clear
``is_read``, and a read story is never flagged new.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from .article_cache import ArticleCache
from .collection import StoryCollection
from .datamodels import ArticleReadyNotice, CachedArticle, ErrorNotice, Story, StoryUpdate
from .events import ArticleDone, ArticleError, StoriesUpdated
from .read_state import ReadStateStore
from .session import ReadingSession

logger = logging.getLogger("hn_reader")

DEFAULT_TRANSLATION_ERROR = "Translation failed"


@dataclass
class StoriesUpdateResult:
    new_ids: List[int] = field(default_factory=list)
    updated_ids: List[int] = field(default_factory=list)
    last_updated_at: Optional[int] = None


def _protect_local_flags(existing: Story, update: Mapping) -> Dict:
    update = dict(update)
    if existing.is_read:
        update.pop("is_read", None)
        if update.get("is_new"):
            update.pop("is_new")
    return update


def _fresh_story(update: StoryUpdate, read_state: ReadStateStore, is_new: bool) -> Story:
    story = Story.from_update(update)
    is_read = story.is_read or story.id in read_state
    return story.merge({"is_read": is_read, "is_new": is_new and not is_read})


def _coalesce(updates: Iterable[StoryUpdate]) -> Dict[int, StoryUpdate]:
    """Fold repeated ids in one payload into a single update, later fields winning."""
    merged: Dict[int, StoryUpdate] = {}
    for update in updates:
        story_id = update["id"]
        if story_id in merged:
            merged[story_id] = {**merged[story_id], **update}
        else:
            merged[story_id] = dict(update)
    return merged


def insert_block(collection: StoryCollection, stories: Iterable[Story]) -> List[int]:
    """Ranked-insert several stories.

    Unranked stories end up as one contiguous block at the front, in the
    order given.
    """
    stories = list(stories)
    inserted = []
    for story in stories:
        if story.hn_rank is not None and collection.insert_ranked(story):
            inserted.append(story.id)
    for story in reversed([s for s in stories if s.hn_rank is None]):
        if collection.insert_ranked(story):
            inserted.append(story.id)
    return inserted


def apply_stories_updated(
    collection: StoryCollection,
    event: StoriesUpdated,
    read_state: ReadStateStore,
) -> StoriesUpdateResult:
    result = StoriesUpdateResult(last_updated_at=event.last_updated_at)
    fresh = []
    for story_id, update in _coalesce(event.stories).items():
        existing = collection.get(story_id)
        if existing is not None:
            collection.update(story_id, **_protect_local_flags(existing, update))
            result.updated_ids.append(story_id)
        else:
            fresh.append(_fresh_story(update, read_state, is_new=True))
    result.new_ids = insert_block(collection, fresh)
    logger.debug(
        "stories.updated: %d new, %d updated", len(result.new_ids), len(result.updated_ids)
    )
    return result


def apply_article_done(
    collection: StoryCollection,
    cache: ArticleCache,
    session: ReadingSession,
    read_state: ReadStateStore,
    event: ArticleDone,
) -> ArticleReadyNotice:
    cache.put(
        CachedArticle(
            id=event.story_id,
            title=event.title,
            content=event.content,
            original_url=event.original_url,
            timestamp=time.time(),
        )
    )
    translated = {"is_article_translating": False, "has_translated_article": True}
    if event.story_id in collection:
        collection.update(event.story_id, **translated)
    elif event.story is not None:
        update = {**event.story, "id": event.story_id, **translated}
        collection.insert_ranked(_fresh_story(update, read_state, is_new=True))
        logger.debug("Inserted story %s from article.done", event.story_id)

    if session.is_open_on(event.story_id):
        session.deliver(event.content)

    return ArticleReadyNotice(story_id=event.story_id, title=event.title)


def apply_article_error(
    collection: StoryCollection,
    session: ReadingSession,
    event: ArticleError,
) -> ErrorNotice:
    collection.update(event.story_id, is_article_translating=False)
    if session.is_open_on(event.story_id):
        session.close()
    return ErrorNotice(
        title=event.title,
        error_message=event.error_message or DEFAULT_TRANSLATION_ERROR,
    )


def sync_translated_flags(collection: StoryCollection, cache: ArticleCache) -> List[int]:
    """Raise ``has_translated_article`` for cached ids; never lowers a server value."""
    raised = []
    for story in collection:
        if not story.has_translated_article and story.id in cache:
            collection.update(story.id, has_translated_article=True)
            raised.append(story.id)
    return raised


def apply_initial_page(
    collection: StoryCollection,
    updates: Iterable[StoryUpdate],
    read_state: ReadStateStore,
) -> None:
    """Make the first page the display order.

    Stories pushed before the page arrived are kept and placed by rank.
    """
    page = []
    for story_id, update in _coalesce(updates).items():
        existing = collection.get(story_id)
        if existing is not None:
            page.append(existing.merge(_protect_local_flags(existing, update)))
        else:
            page.append(_fresh_story(update, read_state, is_new=False))
    page_ids = {s.id for s in page}
    leftovers = [s for s in collection if s.id not in page_ids]
    collection.replace_order(page)
    insert_block(collection, leftovers)


def apply_page(
    collection: StoryCollection,
    updates: Iterable[StoryUpdate],
    read_state: ReadStateStore,
) -> List[Story]:
    """Append a pagination page in server order, skipping known ids."""
    stories = [
        _fresh_story(update, read_state, is_new=False)
        for update in _coalesce(updates).values()
    ]
    return collection.append_new(stories)


def record_open(
    collection: StoryCollection,
    read_state: ReadStateStore,
    story: Story,
) -> None:
    """Read-state bookkeeping that happens whenever a story is opened."""
    if not story.is_read:
        read_state.add(story.id)
        collection.mark_read(story.id)
    elif story.is_new:
        collection.clear_new_flag(story.id)
