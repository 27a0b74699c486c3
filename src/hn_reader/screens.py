from __future__ import annotations

import webbrowser

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.screen import Screen
from textual.widgets import Header, LoadingIndicator, Markdown, Static

from .session import ReaderSnapshot, ReaderState
from .widgets import StatusBar


# --- Article screen ---
class ArticleScreen(Screen):
    """Shows the reading session; the app pops it when the session closes."""

    BINDINGS = [
        Binding("escape,q,left", "close_reader", "Back"),
        Binding("o", "open_in_browser", "Open in browser"),
        Binding("down", "scroll_down", "Scroll Down"),
        Binding("up", "scroll_up", "Scroll Up"),
    ]

    def __init__(self, reader: ReaderSnapshot):
        super().__init__()
        self.reader = reader

    def compose(self) -> ComposeResult:
        yield Header()
        yield LoadingIndicator(id="article-loading")
        yield Static("", id="article-status")
        yield VerticalScroll(Markdown("", id="article-markdown"), id="article-scroll")
        yield StatusBar()

    def on_mount(self) -> None:
        self.query_one(StatusBar).set_keybindings(
            "[b $accent]up/down[/] to scroll, [b $accent]o[/] to open, [b $accent]esc[/] to close"
        )
        self.query_one("#article-scroll").focus()
        self.show(self.reader)

    def show(self, reader: ReaderSnapshot) -> None:
        self.reader = reader
        if reader.story is not None:
            self.title = reader.story.display_title
        loading = reader.state is ReaderState.OPENING
        self.query_one("#article-loading", LoadingIndicator).display = loading
        self.query_one("#article-status", Static).update(reader.status_message)
        self.query_one("#article-scroll").display = not loading
        if reader.state is ReaderState.READY:
            self.query_one("#article-markdown", Markdown).update(reader.content)

    def action_close_reader(self) -> None:
        self.app.engine.close_reader()

    def action_open_in_browser(self) -> None:
        story = self.reader.story
        if story is not None and story.url:
            webbrowser.open(story.url)

    def action_scroll_down(self) -> None:
        self.query_one("#article-scroll", VerticalScroll).scroll_down()

    def action_scroll_up(self) -> None:
        self.query_one("#article-scroll", VerticalScroll).scroll_up()
