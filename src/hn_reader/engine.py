from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, FrozenSet, List, Optional, Tuple

from .api import BackendClient
from .article_cache import ArticleCache
from .collection import StoryCollection
from .config import INITIAL_ITEMS, LOAD_MORE_ITEMS, RECONNECT_DELAY
from .datamodels import ErrorNotice, LoadingState, Notifications, Story
from .errors import TransportError
from .events import ArticleDone, ArticleError, Connected, Event, StoriesUpdated
from .favorites import FavoritesStore
from .read_state import ReadStateStore
from .reconcile import (
    apply_article_done,
    apply_article_error,
    apply_initial_page,
    apply_page,
    apply_stories_updated,
    record_open,
    sync_translated_flags,
)
from .session import ReaderSnapshot, ReadingSession
from .storage import KeyValueStore
from .stream import ConnectionState, EventStreamClient, TransportFactory, sse_transport_factory

logger = logging.getLogger("hn_reader")

LOAD_FAILED_MESSAGE = "Failed to load the translated article, please try again."
NOT_TRANSLATED_MESSAGE = "This article has not been translated yet, please try again later."

NOTIFICATION_KINDS = ("article_ready", "error", "translating_count")


@dataclass(frozen=True)
class FeedState:
    """Everything the presentation layer may read, frozen at one instant."""

    stories: Tuple[Story, ...]
    loading_state: LoadingState
    last_updated_at: Optional[int]
    notifications: Notifications
    reader: ReaderSnapshot
    connection: ConnectionState
    favorite_ids: FrozenSet[int]


Subscriber = Callable[[FeedState], None]


class SyncEngine:
    """Keeps the local feed in step with the backend.

    All state lives here and changes only on the event loop; blocking REST
    calls run in worker threads and their results are applied back on the
    loop. Subscribers get a fresh ``FeedState`` after every step.

    Use as ``async with SyncEngine(...) as engine:`` so the push connection
    and its reconnect timer are released on every exit path.
    """

    def __init__(
        self,
        api: BackendClient,
        store: KeyValueStore,
        transport_factory: Optional[TransportFactory] = None,
        call_later: Optional[Callable[[float, Callable[[], None]], Any]] = None,
        reconnect_delay: float = RECONNECT_DELAY,
        initial_items: int = INITIAL_ITEMS,
        load_more_items: int = LOAD_MORE_ITEMS,
    ):
        self.api = api
        self.read_state = ReadStateStore(store)
        self.favorites = FavoritesStore(store)
        self.cache = ArticleCache()
        self.collection = StoryCollection()
        self.session = ReadingSession()
        self.loading_state = LoadingState.IDLE
        self.last_updated_at: Optional[int] = None
        self.notifications = Notifications()
        self.stream: Optional[EventStreamClient] = None
        self.reconnect_delay = reconnect_delay
        self.initial_items = initial_items
        self.load_more_items = load_more_items
        self._transport_factory = transport_factory
        self._call_later = call_later
        self._subscribers: List[Subscriber] = []
        self._favorite_ids = frozenset(s.id for s in self.favorites.stories())

    # --- lifecycle ---
    async def __aenter__(self) -> "SyncEngine":
        try:
            await self.start()
        except BaseException:
            self.close()
            raise
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    async def start(self) -> None:
        if self.stream is not None:
            raise RuntimeError("engine already started")
        loop = asyncio.get_running_loop()
        factory = self._transport_factory or sse_transport_factory(self.api.events_url, loop)
        self.stream = EventStreamClient(
            factory,
            self.handle_event,
            self._call_later or loop.call_later,
            reconnect_delay=self.reconnect_delay,
        )
        await self.load_article_cache()
        self.stream.connect()
        await self.reload()

    def close(self) -> None:
        if self.stream is not None:
            self.stream.close()

    # --- observation ---
    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def snapshot(self) -> FeedState:
        return FeedState(
            stories=self.collection.snapshot(),
            loading_state=self.loading_state,
            last_updated_at=self.last_updated_at,
            notifications=self.notifications,
            reader=self.session.snapshot(),
            connection=self.stream.state if self.stream else ConnectionState.DISCONNECTED,
            favorite_ids=self._favorite_ids,
        )

    def _publish(self) -> None:
        state = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception("Feed subscriber failed")

    def _notify(self, **changes: Any) -> None:
        self.notifications = replace(self.notifications, **changes)

    def _notify_error(self, title: str, message: str) -> None:
        self._notify(error=ErrorNotice(title=title, error_message=message))

    # --- loading ---
    async def load_article_cache(self) -> None:
        try:
            records = await asyncio.to_thread(self.api.fetch_article_cache)
        except TransportError as e:
            logger.error("Failed to load article cache: %s", e)
            return
        count = self.cache.load(records)
        logger.info("Loaded %d cached articles", count)
        sync_translated_flags(self.collection, self.cache)
        self._publish()

    async def reload(self) -> None:
        """Fetch the first page; a failure holds the ERROR state until the next reload."""
        if self.loading_state is LoadingState.LOADING_STORIES:
            return
        self.loading_state = LoadingState.LOADING_STORIES
        self._publish()
        try:
            page = await asyncio.to_thread(self.api.fetch_stories, 0, self.initial_items)
        except TransportError as e:
            logger.error("Failed to load stories: %s", e)
            self.loading_state = LoadingState.ERROR
            self._publish()
            return
        apply_initial_page(self.collection, page.stories, self.read_state)
        sync_translated_flags(self.collection, self.cache)
        self.last_updated_at = page.last_updated_at
        self.loading_state = LoadingState.IDLE
        logger.info("Loaded %d stories", len(self.collection))
        self._publish()

    def next_cursor(self) -> int:
        last = self.collection.last()
        if last is not None and last.hn_rank is not None:
            return last.hn_rank + 1
        return len(self.collection)

    async def load_more(self) -> None:
        if self.loading_state is LoadingState.LOADING_STORIES:
            return
        previous = self.loading_state
        self.loading_state = LoadingState.LOADING_STORIES
        self._publish()
        cursor = self.next_cursor()
        try:
            page = await asyncio.to_thread(self.api.fetch_stories, cursor, self.load_more_items)
        except TransportError as e:
            logger.error("Failed to load more stories at cursor %d: %s", cursor, e)
        else:
            added = apply_page(self.collection, page.stories, self.read_state)
            sync_translated_flags(self.collection, self.cache)
            logger.info("Loaded %d more stories from cursor %d", len(added), cursor)
            if page.untranslated_count > 0:
                self._notify(translating_count=page.untranslated_count)
            previous = LoadingState.IDLE
        finally:
            self.loading_state = previous
            self._publish()

    # --- push events ---
    def handle_event(self, event: Event) -> None:
        if isinstance(event, Connected):
            logger.info("Event stream acknowledged")
        elif isinstance(event, StoriesUpdated):
            result = apply_stories_updated(self.collection, event, self.read_state)
            if result.last_updated_at:
                self.last_updated_at = result.last_updated_at
            sync_translated_flags(self.collection, self.cache)
        elif isinstance(event, ArticleDone):
            notice = apply_article_done(
                self.collection, self.cache, self.session, self.read_state, event
            )
            self._notify(article_ready=notice)
            logger.info("Article %s translated", event.story_id)
        elif isinstance(event, ArticleError):
            notice = apply_article_error(self.collection, self.session, event)
            self._notify(error=notice)
            logger.warning("Article %s failed: %s", event.story_id, notice.error_message)
        self._publish()

    # --- user actions ---
    async def open_story(self, story: Story) -> None:
        current = self.collection.get(story.id) or story
        record_open(self.collection, self.read_state, current)
        current = self.collection.get(story.id) or replace(current, is_read=True, is_new=False)

        cached = self.cache.get(current.id)
        if cached is not None:
            self.session.show(current, cached.content)
            self._publish()
            return

        if not current.has_translated_article:
            self._notify_error(current.display_title, NOT_TRANSLATED_MESSAGE)
            self._publish()
            return

        token = self.session.begin(current)
        self._publish()
        try:
            article = await asyncio.to_thread(self.api.fetch_article, current.id)
        except TransportError as e:
            logger.error("Failed to fetch article %s: %s", current.id, e)
            if self.session.is_current(token):
                self.session.fail(LOAD_FAILED_MESSAGE)
                self._publish()
                self.session.close()
            elif current.id in self.cache:
                logger.info("Article %s already arrived by push", current.id)
                return
            self._notify_error(current.display_title, LOAD_FAILED_MESSAGE)
            self._publish()
            return

        if article is None:
            logger.info("Article %s is not ready on the server", current.id)
            if self.session.is_current(token):
                self.session.close()
            elif current.id in self.cache:
                return
            self._notify_error(current.display_title, NOT_TRANSLATED_MESSAGE)
            self._publish()
            return

        self.cache.put(article)
        sync_translated_flags(self.collection, self.cache)
        if self.session.is_current(token):
            self.session.deliver(article.content)
        self._publish()

    def open_notified_article(self) -> None:
        notice = self.notifications.article_ready
        if notice is None:
            return
        cached = self.cache.get(notice.story_id)
        if cached is not None:
            story = self.collection.get(notice.story_id) or Story(
                id=cached.id,
                title=cached.title,
                by="unknown",
                time=int(cached.timestamp),
                url=cached.original_url,
                type="story",
            )
            self.session.show(story, cached.content)
        self._notify(article_ready=None)
        self._publish()

    def close_reader(self) -> None:
        self.session.close()
        self._publish()

    def dismiss_notification(self, kind: Optional[str] = None) -> None:
        """Clear one notification slot, or all of them when ``kind`` is None."""
        if kind is None:
            self.notifications = Notifications()
        elif kind in NOTIFICATION_KINDS:
            self._notify(**{kind: None})
        else:
            raise ValueError(f"Unknown notification kind: {kind}")
        self._publish()

    def toggle_favorite(self, story_id: int) -> bool:
        story = self.collection.get(story_id)
        if story is None:
            return False
        favorited = self.favorites.toggle(story)
        if favorited:
            self._favorite_ids = self._favorite_ids | {story_id}
        else:
            self._favorite_ids = self._favorite_ids - {story_id}
        self._publish()
        return favorited
