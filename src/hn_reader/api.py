from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .article_cache import DONE
from .config import HTTP_TIMEOUT, RETRY_ATTEMPTS
from .datamodels import CachedArticle, StoriesPage, story_fields
from .errors import EnvelopeError, TransportError

logger = logging.getLogger("hn_reader")

REQUEST_HEADERS = {"Accept": "application/json"}


def create_session(retries: int = RETRY_ATTEMPTS) -> requests.Session:
    s = requests.Session()
    s.headers.update(REQUEST_HEADERS)
    retry = Retry(
        total=retries,
        backoff_factor=0.3,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=frozenset(["GET"]),
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


class BackendClient:
    """Blocking client for the backend REST API.

    Every response is an envelope ``{success, data?, error?}``; anything else
    raises EnvelopeError, and network failures raise TransportError.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or create_session()
        self.timeout = timeout

    @property
    def events_url(self) -> str:
        return f"{self.base_url}/events"

    def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("GET %s %s", url, params or "")
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Network error for {path}: {e}") from e
        return self._parse_envelope(resp)

    @staticmethod
    def _parse_envelope(resp: requests.Response) -> Any:
        try:
            payload = resp.json() if resp.content else {"success": False}
        except ValueError as e:
            raise EnvelopeError(
                f"Failed to parse API response: {e}", status_code=resp.status_code
            ) from e
        if not isinstance(payload, dict):
            raise EnvelopeError("API response is not an object", status_code=resp.status_code)

        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        if not resp.ok or not payload.get("success"):
            message = error.get("message") or f"Request failed with status {resp.status_code}"
            raise EnvelopeError(message, status_code=resp.status_code, code=error.get("code"))
        if payload.get("data") is None:
            raise EnvelopeError("API response missing data field", status_code=resp.status_code)
        return payload["data"]

    def fetch_stories(self, cursor: int = 0, limit: int = 20) -> StoriesPage:
        data = self._request("/stories", params={"cursor": cursor, "limit": limit})
        raw = data.get("stories") or []
        stories = []
        for item in raw:
            try:
                stories.append(story_fields(item))
            except (TypeError, ValueError) as e:
                logger.warning("Skipped story at cursor %d: %s", cursor, e)
        return StoriesPage(
            stories=stories,
            last_updated_at=data.get("lastUpdatedAt"),
            untranslated_count=data.get("untranslatedCount") or 0,
        )

    def fetch_article_cache(self) -> List[Dict[str, Any]]:
        """Raw article-translation records; callers filter to finished ones."""
        data = self._request("/articles")
        if not isinstance(data, list):
            raise EnvelopeError("Article list response is not a list")
        return [r for r in data if isinstance(r, dict)]

    def fetch_article(self, story_id: int) -> Optional[CachedArticle]:
        """One translated article, or None when it is absent or not finished."""
        try:
            record = self._request(f"/articles/{story_id}")
        except EnvelopeError as e:
            if e.status_code == 404:
                logger.debug("Article %s not found on server", story_id)
                return None
            raise
        if not isinstance(record, dict) or record.get("status") != DONE:
            return None
        record.setdefault("story_id", story_id)
        return CachedArticle.from_record(record)

    def close(self) -> None:
        self.session.close()
