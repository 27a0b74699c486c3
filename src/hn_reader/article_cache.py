from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .datamodels import CachedArticle

logger = logging.getLogger("hn_reader")

DONE = "done"


def completed_articles(records: Iterable[Mapping[str, Any]]) -> List[CachedArticle]:
    """Keep only finished translations from a backend snapshot."""
    articles = []
    for record in records:
        if record.get("status") != DONE or "story_id" not in record:
            continue
        articles.append(CachedArticle.from_record(record))
    return articles


class ArticleCache:
    """Translated article bodies keyed by story id.

    The cache only saves a round trip: a missing entry says nothing about
    whether the article has been translated.
    """

    def __init__(self) -> None:
        self._articles: Dict[int, CachedArticle] = {}

    def load(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Replace the contents with a backend snapshot. Returns the entry count."""
        self._articles = {a.id: a for a in completed_articles(records)}
        logger.debug("Article cache loaded with %d entries", len(self._articles))
        return len(self._articles)

    def get(self, story_id: int) -> Optional[CachedArticle]:
        return self._articles.get(story_id)

    def put(self, article: CachedArticle) -> None:
        self._articles[article.id] = article

    def ids(self) -> List[int]:
        return list(self._articles)

    def __contains__(self, story_id: object) -> bool:
        return story_id in self._articles

    def __len__(self) -> int:
        return len(self._articles)
