from __future__ import annotations

import pytest

from hn_reader.article_cache import ArticleCache
from hn_reader.collection import StoryCollection
from hn_reader.datamodels import CachedArticle, Story
from hn_reader.events import ArticleDone, ArticleError, StoriesUpdated
from hn_reader.read_state import ReadStateStore
from hn_reader.reconcile import (
    DEFAULT_TRANSLATION_ERROR,
    apply_article_done,
    apply_article_error,
    apply_initial_page,
    apply_page,
    apply_stories_updated,
    record_open,
    sync_translated_flags,
)
from hn_reader.session import ReaderState, ReadingSession


@pytest.fixture
def read_state(store):
    return ReadStateStore(store)


def test_new_story_is_ranked_and_flagged_new(read_state):
    collection = StoryCollection([Story(id=1, hn_rank=0), Story(id=3, hn_rank=2)])
    event = StoriesUpdated(stories=[{"id": 2, "hn_rank": 1, "title": "x"}], last_updated_at=100)

    result = apply_stories_updated(collection, event, read_state)

    assert collection.ids() == [1, 2, 3]
    assert collection.get(2).is_new is True
    assert collection.get(2).title == "x"
    assert result.new_ids == [2]
    assert result.last_updated_at == 100


def test_existing_story_merges_in_place(read_state):
    collection = StoryCollection([Story(id=1, title="a", hn_rank=0), Story(id=2, title="b", hn_rank=1)])
    apply_stories_updated(
        collection, StoriesUpdated(stories=[{"id": 2, "translated_title": "B!"}]), read_state
    )
    assert collection.ids() == [1, 2]
    assert collection.get(2).translated_title == "B!"
    assert collection.get(2).title == "b"
    assert collection.get(2).is_new is False


def test_unranked_new_stories_form_a_block_at_the_front(read_state):
    collection = StoryCollection([Story(id=1, hn_rank=0)])
    event = StoriesUpdated(stories=[{"id": 10}, {"id": 11}, {"id": 1, "score": 3}])
    apply_stories_updated(collection, event, read_state)
    assert collection.ids() == [10, 11, 1]


def test_applying_same_payload_twice_is_idempotent(read_state):
    collection = StoryCollection([Story(id=1, hn_rank=0), Story(id=3, hn_rank=2)])
    event = StoriesUpdated(
        stories=[{"id": 2, "hn_rank": 1}, {"id": 3, "score": 50}, {"id": 9}]
    )
    apply_stories_updated(collection, event, read_state)
    once = collection.snapshot()
    apply_stories_updated(collection, event, read_state)
    assert collection.snapshot() == once
    assert len(set(collection.ids())) == len(collection)


def test_new_story_already_read_is_not_flagged_new(read_state):
    read_state.add(2)
    collection = StoryCollection([Story(id=1, hn_rank=0)])
    apply_stories_updated(collection, StoriesUpdated(stories=[{"id": 2, "hn_rank": 1}]), read_state)
    story = collection.get(2)
    assert story.is_read is True
    assert story.is_new is False


def test_read_flag_survives_later_pushes(read_state):
    collection = StoryCollection([Story(id=1, hn_rank=0)])
    record_open(collection, read_state, collection.get(1))
    apply_stories_updated(
        collection,
        StoriesUpdated(stories=[{"id": 1, "is_read": False, "is_new": True, "score": 2}]),
        read_state,
    )
    story = collection.get(1)
    assert story.is_read is True
    assert story.is_new is False
    assert story.score == 2


def test_duplicate_ids_in_one_payload_are_coalesced(read_state):
    collection = StoryCollection()
    event = StoriesUpdated(stories=[{"id": 4, "title": "a"}, {"id": 4, "score": 7}])
    apply_stories_updated(collection, event, read_state)
    assert collection.ids() == [4]
    assert (collection.get(4).title, collection.get(4).score) == ("a", 7)


def test_article_done_without_session_caches_and_inserts(read_state):
    collection = StoryCollection([Story(id=1, hn_rank=0), Story(id=9, hn_rank=8)])
    cache = ArticleCache()
    session = ReadingSession()
    event = ArticleDone(
        story_id=5,
        title="Five",
        content="# body",
        original_url="http://five",
        story={"id": 5, "title": "Five", "hn_rank": 4},
    )

    notice = apply_article_done(collection, cache, session, read_state, event)

    assert cache.get(5).content == "# body"
    assert collection.ids() == [1, 5, 9]
    story = collection.get(5)
    assert story.is_new and story.has_translated_article
    assert (notice.story_id, notice.title) == (5, "Five")
    assert session.state is ReaderState.IDLE


def test_article_done_updates_existing_story_flags(read_state):
    collection = StoryCollection([Story(id=5, is_article_translating=True)])
    cache = ArticleCache()
    cache.put(CachedArticle(id=5, title="old", content="old"))
    apply_article_done(
        collection, cache, ReadingSession(), read_state,
        ArticleDone(story_id=5, title="new", content="new"),
    )
    story = collection.get(5)
    assert story.has_translated_article and not story.is_article_translating
    assert cache.get(5).content == "new"


def test_article_done_absent_story_without_payload_only_caches(read_state):
    collection = StoryCollection()
    cache = ArticleCache()
    apply_article_done(collection, cache, ReadingSession(), read_state, ArticleDone(5, "t", "c"))
    assert 5 in cache
    assert len(collection) == 0


def test_article_done_resolves_open_session(read_state):
    story = Story(id=7, has_translated_article=True)
    collection = StoryCollection([story])
    session = ReadingSession()
    session.begin(story)
    apply_article_done(collection, ArticleCache(), session, read_state, ArticleDone(7, "t", "text"))
    assert session.state is ReaderState.READY
    assert session.content == "text"


def test_article_error_closes_session_on_same_story():
    story = Story(id=7, is_article_translating=True)
    collection = StoryCollection([story])
    session = ReadingSession()
    session.begin(story)

    notice = apply_article_error(
        collection, session, ArticleError(story_id=7, title="Seven", error_message="LLM down")
    )

    assert session.state is ReaderState.IDLE
    assert collection.get(7).is_article_translating is False
    assert (notice.title, notice.error_message) == ("Seven", "LLM down")


def test_article_error_leaves_other_session_and_defaults_message():
    collection = StoryCollection([Story(id=7), Story(id=8)])
    session = ReadingSession()
    session.show(Story(id=8), "content")
    notice = apply_article_error(collection, session, ArticleError(story_id=7, title="Seven"))
    assert session.state is ReaderState.READY
    assert notice.error_message == DEFAULT_TRANSLATION_ERROR


def test_sync_translated_flags_never_lowers():
    collection = StoryCollection([Story(id=1), Story(id=2, has_translated_article=True), Story(id=3)])
    cache = ArticleCache()
    cache.put(CachedArticle(id=1, title="t", content="c"))
    assert sync_translated_flags(collection, cache) == [1]
    assert [s.has_translated_article for s in collection] == [True, True, False]


def test_initial_page_orders_by_server_and_keeps_pushed(read_state):
    read_state.add(2)
    collection = StoryCollection([Story(id=50, hn_rank=1, is_new=True)])
    apply_initial_page(
        collection,
        [{"id": 1, "hn_rank": 0}, {"id": 2, "hn_rank": 2}, {"id": 3, "hn_rank": 3}],
        read_state,
    )
    assert collection.ids() == [1, 50, 2, 3]
    assert collection.get(2).is_read is True
    assert collection.get(1).is_new is False
    assert collection.get(50).is_new is True


def test_page_appends_unknown_ids_in_server_order(read_state):
    read_state.add(12)
    collection = StoryCollection([Story(id=10, hn_rank=0)])
    added = apply_page(collection, [{"id": 12, "hn_rank": 2}, {"id": 10}, {"id": 11, "hn_rank": 1}], read_state)
    assert [s.id for s in added] == [12, 11]
    assert collection.ids() == [10, 12, 11]
    assert collection.get(12).is_read is True


def test_record_open_marks_read_once(read_state):
    collection = StoryCollection([Story(id=1, is_new=True)])
    record_open(collection, read_state, collection.get(1))
    assert 1 in read_state
    assert collection.get(1).is_read and not collection.get(1).is_new


def test_record_open_on_read_story_only_clears_new(store):
    read_state = ReadStateStore(store)
    collection = StoryCollection([Story(id=1, is_new=True, is_read=True)])
    record_open(collection, read_state, collection.get(1))
    assert 1 not in read_state
    assert collection.get(1).is_new is False
