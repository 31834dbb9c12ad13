"""Keyword rotation with a persisted cursor.

A rotating scan resumes at the keyword where the previous call stopped; a
non-rotating scan always starts at the first keyword. The scheduler is pure
apart from delegating cursor reads/writes to a ``StateStore``.

Usage:
    scheduler = KeywordRotationScheduler(JsonFileStateStore("keyword_state.json"))
    start = scheduler.start_index(keywords, rotate=True)
    for idx in scheduler.order(start, len(keywords)):
        ...
    scheduler.persist(next_index)
"""
from __future__ import annotations

from typing import Iterator, Sequence

import structlog

from .state_store import StateStore

logger = structlog.get_logger(__name__)


def advance(index: int, length: int) -> int:
    """Next index in rotation order; applying it ``length`` times is the identity."""
    if length <= 0:
        raise ValueError("keyword list must not be empty")
    return (index + 1) % length


class KeywordRotationScheduler:
    def __init__(self, store: StateStore):
        self.store = store

    def start_index(self, keywords: Sequence[str], rotate: bool) -> int:
        if not keywords:
            raise ValueError("keyword list must not be empty")
        if not rotate:
            return 0
        # The list may have shrunk since the cursor was written
        index = self.store.load() % len(keywords)
        logger.info("rotation_start", index=index, keyword=keywords[index])
        return index

    def advance(self, index: int, length: int) -> int:
        return advance(index, length)

    def order(self, start: int, length: int) -> Iterator[int]:
        """Yield every index exactly once, beginning at ``start``."""
        for offset in range(length):
            yield (start + offset) % length

    def persist(self, index: int) -> None:
        self.store.save(index)
