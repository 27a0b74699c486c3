from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .datamodels import Story

logger = logging.getLogger("hn_reader")

LOADING_MESSAGE = "Loading translated article..."


class ReaderState(Enum):
    IDLE = "idle"
    OPENING = "opening"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ReaderSnapshot:
    state: ReaderState = ReaderState.IDLE
    story: Optional[Story] = None
    content: str = ""
    status_message: str = ""

    @property
    def is_open(self) -> bool:
        return self.state is not ReaderState.IDLE

    @property
    def is_loading(self) -> bool:
        return self.state is ReaderState.OPENING


class ReadingSession:
    """Which story the user is reading and whether its content has arrived.

    ``generation`` increases on every open and close so a fetch that
    completes after its session was replaced can tell it is stale.
    """

    def __init__(self) -> None:
        self.state = ReaderState.IDLE
        self.story: Optional[Story] = None
        self.content = ""
        self.status_message = ""
        self.generation = 0

    def is_open_on(self, story_id: int) -> bool:
        return self.state is not ReaderState.IDLE and self.story is not None and self.story.id == story_id

    def show(self, story: Story, content: str) -> int:
        self._start(story)
        self.state = ReaderState.READY
        self.content = content
        return self.generation

    def begin(self, story: Story) -> int:
        """Enter OPENING for ``story``; returns the token the fetch must present."""
        self._start(story)
        self.state = ReaderState.OPENING
        self.status_message = LOADING_MESSAGE
        return self.generation

    def _start(self, story: Story) -> None:
        self.generation += 1
        self.story = story
        self.content = ""
        self.status_message = ""

    def is_current(self, token: int) -> bool:
        return token == self.generation and self.state is ReaderState.OPENING

    def deliver(self, content: str) -> None:
        if self.state is ReaderState.IDLE:
            return
        self.state = ReaderState.READY
        self.content = content
        self.status_message = ""

    def fail(self, message: str) -> None:
        self.state = ReaderState.FAILED
        self.status_message = message

    def close(self) -> None:
        if self.state is not ReaderState.IDLE:
            logger.debug("Closing reading session from state %s", self.state.value)
        self.generation += 1
        self.state = ReaderState.IDLE
        self.story = None
        self.content = ""
        self.status_message = ""

    def snapshot(self) -> ReaderSnapshot:
        return ReaderSnapshot(
            state=self.state,
            story=self.story,
            content=self.content,
            status_message=self.status_message,
        )
