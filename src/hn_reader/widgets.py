from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.reactive import reactive
from textual.widgets import ListItem, Static
from rich.text import Text

from .datamodels import Story


def story_label(story: Story, position: int, favorited: bool = False) -> Text:
    """One feed row: position, markers, title and meta line."""
    text = Text()
    text.append(f"{position:>3}. ", style="dim")
    if story.is_new:
        text.append("NEW ", style="bold green")
    if favorited:
        text.append("* ", style="bold yellow")
    if story.is_article_translating or story.is_translating:
        text.append("... ", style="italic cyan")
    elif story.has_translated_article:
        text.append("[T] ", style="cyan")
    title_style = "dim" if story.is_read else "bold"
    text.append(story.display_title, style=title_style)
    meta = f"  {story.score} points by {story.by}"
    if story.descendants is not None:
        meta += f" | {story.descendants} comments"
    text.append(meta, style="dim")
    return text


# --- UI Widgets ---
class StoryListItem(ListItem):
    def __init__(self, story: Story, position: int, favorited: bool = False):
        super().__init__()
        self.story = story
        self.position = position
        self.favorited = favorited

    def compose(self) -> ComposeResult:
        with Horizontal(classes="story-container"):
            yield Static(story_label(self.story, self.position, self.favorited), classes="story-title")


class StatusBar(Static):
    loading_status = reactive("")
    connection_status = reactive("")
    keybinding_hint = reactive("")

    def on_mount(self) -> None:
        self.update_display()

    def set_keybindings(self, hint: str) -> None:
        """Set the keybinding hint text."""
        self.keybinding_hint = hint

    def update_display(self) -> None:
        """Update the status bar display."""
        status_items = [
            item
            for item in (self.loading_status, self.connection_status, self.keybinding_hint)
            if item
        ]
        self.update(" | ".join(status_items))

    def watch_loading_status(self, loading_status: str) -> None:
        self.update_display()

    def watch_connection_status(self, connection_status: str) -> None:
        self.update_display()

    def watch_keybinding_hint(self, keybinding_hint: str) -> None:
        self.update_display()


class ErrorMessage(Static):
    def __init__(self, message: str):
        super().__init__(Text(message, style="bold red"))
