from __future__ import annotations

from typing import Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .datamodels import Story


class StoryCollection:
    """Ordered, id-unique list of stories. List order is display order.

    Stories are immutable; every change swaps in a merged copy, so snapshots
    handed out earlier never change under the reader.
    """

    def __init__(self, stories: Iterable[Story] = ()):
        self._stories: List[Story] = []
        for story in stories:
            if story.id not in self:
                self._stories.append(story)

    def _index(self, story_id: int) -> int:
        for i, story in enumerate(self._stories):
            if story.id == story_id:
                return i
        return -1

    def get(self, story_id: int) -> Optional[Story]:
        i = self._index(story_id)
        return self._stories[i] if i >= 0 else None

    def update(self, story_id: int, **changes) -> Optional[Story]:
        """Field-wise update of one story in place. No-op for an unknown id."""
        i = self._index(story_id)
        if i < 0:
            return None
        self._stories[i] = self._stories[i].merge(changes)
        return self._stories[i]

    def upsert_many(self, updates: Iterable[Mapping]) -> List[int]:
        """Merge each update into its story, appending unknown ids.

        Returns the ids that were appended.
        """
        appended = []
        for update in updates:
            story_id = update["id"]
            i = self._index(story_id)
            if i >= 0:
                self._stories[i] = self._stories[i].merge(update)
            else:
                self._stories.append(Story.from_update(update))
                appended.append(story_id)
        return appended

    def insert_ranked(self, story: Story) -> bool:
        """Insert a story that is not yet present.

        Ranked stories go right before the first entry with a strictly greater
        ``hn_rank`` (or at the end); unranked stories go to the front.
        Returns False if the id is already present.
        """
        if story.id in self:
            return False
        if story.hn_rank is None:
            self._stories.insert(0, story)
            return True
        for i, existing in enumerate(self._stories):
            if existing.hn_rank is not None and existing.hn_rank > story.hn_rank:
                self._stories.insert(i, story)
                return True
        self._stories.append(story)
        return True

    def append_new(self, stories: Iterable[Story]) -> List[Story]:
        """Append stories in the given order, skipping ids already present."""
        added = []
        for story in stories:
            if story.id not in self:
                self._stories.append(story)
                added.append(story)
        return added

    def replace_order(self, stories: Sequence[Story]) -> None:
        """Make ``stories`` the display order; duplicates after the first are dropped."""
        self._stories = []
        self.append_new(stories)

    def mark_read(self, story_id: int) -> None:
        self.update(story_id, is_read=True, is_new=False)

    def clear_new_flag(self, story_id: int) -> None:
        story = self.get(story_id)
        if story is not None and story.is_new:
            self.update(story_id, is_new=False)

    def ids(self) -> List[int]:
        return [s.id for s in self._stories]

    def last(self) -> Optional[Story]:
        return self._stories[-1] if self._stories else None

    def snapshot(self) -> Tuple[Story, ...]:
        return tuple(self._stories)

    def __contains__(self, story_id: object) -> bool:
        return self._index(story_id) >= 0  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._stories)

    def __iter__(self) -> Iterator[Story]:
        return iter(tuple(self._stories))
