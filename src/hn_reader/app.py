from __future__ import annotations

import logging
from typing import Any, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Header, ListView, Static

from .api import BackendClient
from .config import INITIAL_ITEMS, LOAD_MORE_ITEMS, RECONNECT_DELAY, STATE_DIR, resolve_api_base_url
from .datamodels import LoadingState, Notifications
from .engine import FeedState, SyncEngine
from .screens import ArticleScreen
from .storage import JsonFileStore
from .stream import ConnectionState
from .widgets import ErrorMessage, StatusBar, StoryListItem

logger = logging.getLogger("hn_reader")

KEYBINDINGS_HINT = (
    "[b $accent]enter[/] read, [b $accent]m[/] more, [b $accent]n[/] open notified, "
    "[b $accent]d[/] dismiss"
)


class HNReaderApp(App):
    TITLE = "HN Reader"
    SUB_TITLE = "Translated Hacker News, live"

    CSS = """
    #stories-list { height: 1fr; }
    ErrorMessage { padding: 1 2; }
    .story-container { height: auto; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "reload", "Reload"),
        Binding("m", "load_more", "More"),
        Binding("b", "favorite", "Favorite"),
        Binding("n", "open_notified", "Open notified"),
        Binding("d", "dismiss", "Dismiss"),
    ]

    def __init__(
        self,
        config: Optional[dict[str, Any]] = None,
        api_url: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.config = config or {}
        self.api = BackendClient(api_url or resolve_api_base_url(self.config))
        self.engine = SyncEngine(
            self.api,
            JsonFileStore(self.config.get("state_dir", STATE_DIR)),
            reconnect_delay=float(self.config.get("reconnect_delay", RECONNECT_DELAY)),
            initial_items=int(self.config.get("initial_items", INITIAL_ITEMS)),
            load_more_items=int(self.config.get("load_more_items", LOAD_MORE_ITEMS)),
        )
        self._state: Optional[FeedState] = None
        self._article_screen: Optional[ArticleScreen] = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield ErrorMessage("Failed to load stories, check the connection and press r.")
        yield ListView(id="stories-list")
        yield Static("", id="feed-footer")
        yield StatusBar()

    def on_mount(self) -> None:
        self.query_one(ErrorMessage).display = False
        self.query_one(StatusBar).set_keybindings(KEYBINDINGS_HINT)
        self.engine.subscribe(self.on_feed_state)
        self.query_one("#stories-list", ListView).focus()
        self.run_worker(self.engine.start(), name="engine_start")

    def on_unmount(self) -> None:
        logger.debug("Shutting down engine")
        self.engine.close()
        self.api.close()

    # --- rendering ---
    def on_feed_state(self, state: FeedState) -> None:
        previous = self._state
        self._state = state
        if previous is None or previous.stories != state.stories or previous.favorite_ids != state.favorite_ids:
            self._render_stories(state)
        self._render_status(state)
        self._render_notifications(previous.notifications if previous else Notifications(), state)
        self._render_reader(state)

    def _render_stories(self, state: FeedState) -> None:
        view = self.query_one("#stories-list", ListView)
        index = view.index
        view.clear()
        for position, story in enumerate(state.stories, start=1):
            view.append(StoryListItem(story, position, story.id in state.favorite_ids))
        if state.stories:
            view.index = min(index or 0, len(state.stories) - 1)

    def _render_status(self, state: FeedState) -> None:
        status_bar = self.query_one(StatusBar)
        loading = state.loading_state is LoadingState.LOADING_STORIES
        status_bar.loading_status = "Loading stories..." if loading else ""
        if state.connection is ConnectionState.OPEN:
            status_bar.connection_status = "live"
        elif state.connection is ConnectionState.DISCONNECTED:
            status_bar.connection_status = ""
        else:
            status_bar.connection_status = "reconnecting"
        self.query_one(ErrorMessage).display = state.loading_state is LoadingState.ERROR
        footer = f"{len(state.stories)} stories"
        if state.stories and not loading:
            footer += " - press m for more"
        self.query_one("#feed-footer", Static).update(footer)

    def _render_notifications(self, previous: Notifications, state: FeedState) -> None:
        current = state.notifications
        if current.article_ready and current.article_ready != previous.article_ready:
            self.notify(
                f"{current.article_ready.title} (press n to read)",
                title="Translation ready",
            )
        if current.error and current.error != previous.error:
            self.notify(current.error.error_message, title=current.error.title, severity="error")
        if current.translating_count and current.translating_count != previous.translating_count:
            self.notify(
                f"{current.translating_count} articles are still being translated",
                title="Translating",
                severity="warning",
            )

    def _render_reader(self, state: FeedState) -> None:
        reader = state.reader
        if reader.is_open:
            if self._article_screen is None:
                self._article_screen = ArticleScreen(reader)
                self.push_screen(self._article_screen)
            else:
                self._article_screen.show(reader)
        elif self._article_screen is not None:
            screen, self._article_screen = self._article_screen, None
            if self.screen is screen:
                self.pop_screen()

    # --- actions ---
    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if isinstance(event.item, StoryListItem):
            self.run_worker(self.engine.open_story(event.item.story), group="open_story")

    def _highlighted_story_id(self) -> Optional[int]:
        item = self.query_one("#stories-list", ListView).highlighted_child
        if isinstance(item, StoryListItem):
            return item.story.id
        return None

    def action_reload(self) -> None:
        self.run_worker(self.engine.reload(), name="reload")

    def action_load_more(self) -> None:
        self.run_worker(self.engine.load_more(), name="load_more")

    def action_favorite(self) -> None:
        story_id = self._highlighted_story_id()
        if story_id is not None:
            self.engine.toggle_favorite(story_id)

    def action_open_notified(self) -> None:
        self.engine.open_notified_article()

    def action_dismiss(self) -> None:
        self.engine.dismiss_notification()
