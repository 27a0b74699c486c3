from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

import pytest

from hn_reader.datamodels import CachedArticle, StoriesPage
from hn_reader.errors import TransportError
from hn_reader.storage import MemoryStore


class FakeHandle:
    def __init__(self, on_frame, on_error):
        self.on_frame = on_frame
        self.on_error = on_error
        self.closed = False

    def close(self):
        self.closed = True


class FakeTransportFactory:
    """Records every connection attempt; tests drive frames and errors by hand."""

    def __init__(self, fail_on_open: bool = False):
        self.handles: List[FakeHandle] = []
        self.fail_on_open = fail_on_open

    def __call__(self, on_frame, on_error):
        if self.fail_on_open:
            self.handles.append(None)
            raise ConnectionError("connection refused")
        handle = FakeHandle(on_frame, on_error)
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]

    def open_handles(self) -> List[FakeHandle]:
        return [h for h in self.handles if h is not None and not h.closed]


class FakeTimerHandle:
    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Stands in for ``loop.call_later``; ``fire()`` runs the due callbacks."""

    def __init__(self):
        self.timers: List[FakeTimerHandle] = []

    def __call__(self, delay, callback):
        handle = FakeTimerHandle(delay, callback)
        self.timers.append(handle)
        return handle

    def pending(self) -> List[FakeTimerHandle]:
        return [t for t in self.timers if not t.cancelled and t.callback is not None]

    def fire(self) -> int:
        due = self.pending()
        for timer in due:
            callback, timer.callback = timer.callback, None
            callback()
        return len(due)


class FakeBackend:
    """In-memory BackendClient replacement; every call is counted."""

    def __init__(self):
        self.pages: Dict[int, StoriesPage] = {}
        self.article_records: List[Dict[str, Any]] = []
        self.articles: Dict[int, Optional[CachedArticle]] = {}
        self.fail_stories = False
        self.fail_article = False
        self.article_gate: Optional[threading.Event] = None
        self.calls: List[tuple] = []
        self.events_url = "http://test/api/events"

    def fetch_stories(self, cursor: int = 0, limit: int = 20) -> StoriesPage:
        self.calls.append(("stories", cursor, limit))
        if self.fail_stories:
            raise TransportError("Network error for /stories: boom")
        return self.pages.get(cursor, StoriesPage(stories=[]))

    def fetch_article_cache(self):
        self.calls.append(("article_cache",))
        return list(self.article_records)

    def fetch_article(self, story_id: int):
        self.calls.append(("article", story_id))
        if self.article_gate is not None:
            self.article_gate.wait(timeout=5)
        if self.fail_article:
            raise TransportError("Network error for /articles: boom")
        return self.articles.get(story_id)

    def article_fetches(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "article"]


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def transport():
    return FakeTransportFactory()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def failing_transport():
    return FakeTransportFactory(fail_on_open=True)
