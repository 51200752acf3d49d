"""Writing assistant output back into the editor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .state import EditorState

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InsertionRange:
    """Where inserted text landed in the document."""

    start: int
    end: int
    file_path: str | None = None


class EditorContentController(Protocol):
    def insert_text_at_cursor(self, text: str) -> InsertionRange | None:
        ...


class SnapshotContentController:
    """Inserts text into the headless :class:`EditorState` at the cursor."""

    def __init__(self, state: EditorState) -> None:
        self._state = state

    def insert_text_at_cursor(self, text: str) -> InsertionRange | None:
        snapshot = self._state.snapshot
        if snapshot is None:
            LOGGER.debug("insert_text_at_cursor: no active document")
            return None
        span = self._state.replace_selection(text)
        if span is None:
            return None
        start, end = span
        return InsertionRange(start=start, end=end, file_path=snapshot.file_path)


__all__ = ["EditorContentController", "InsertionRange", "SnapshotContentController"]
