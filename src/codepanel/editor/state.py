"""Headless editor state mirrored from the host editor."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import PurePath
from typing import Any, Mapping

LOGGER = logging.getLogger(__name__)

_SUFFIX_LANGUAGES: Mapping[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".kt": "kotlin",
    ".scala": "scala",
    ".sh": "shell",
    ".sql": "sql",
    ".md": "markdown",
    ".txt": "plaintext",
}


def infer_language(path: str | None) -> str | None:
    """Guess a language id from a file extension."""
    if not path:
        return None
    return _SUFFIX_LANGUAGES.get(PurePath(path).suffix.lower())


@dataclass(frozen=True, slots=True)
class EditorSnapshot:
    """Active document text with its selection ``[selection_start, selection_end)``."""

    text: str
    file_path: str | None = None
    language: str | None = None
    selection_start: int = 0
    selection_end: int = 0

    def __post_init__(self) -> None:
        length = len(self.text)
        start = min(max(int(self.selection_start), 0), length)
        end = min(max(int(self.selection_end), 0), length)
        if end < start:
            start, end = end, start
        object.__setattr__(self, "selection_start", start)
        object.__setattr__(self, "selection_end", end)
        if self.language is None:
            object.__setattr__(self, "language", infer_language(self.file_path))

    @property
    def selected_text(self) -> str:
        return self.text[self.selection_start : self.selection_end]

    @property
    def has_selection(self) -> bool:
        return self.selection_end > self.selection_start

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "EditorSnapshot":
        selection = payload.get("selection") or {}
        if not isinstance(selection, Mapping):
            raise ValueError("selection must be an object with start and end offsets")
        start = selection.get("start", payload.get("selection_start", 0))
        end = selection.get("end", payload.get("selection_end", start))
        return cls(
            text=str(payload.get("text", "")),
            file_path=payload.get("file_path"),
            language=payload.get("language"),
            selection_start=int(start or 0),
            selection_end=int(end or 0),
        )


class EditorState:
    """Holds the latest :class:`EditorSnapshot` pushed by the host editor."""

    def __init__(self, snapshot: EditorSnapshot | None = None) -> None:
        self._snapshot = snapshot

    @property
    def snapshot(self) -> EditorSnapshot | None:
        return self._snapshot

    def update(self, snapshot: EditorSnapshot | None) -> None:
        self._snapshot = snapshot
        if snapshot is None:
            LOGGER.debug("EditorState cleared")
        else:
            LOGGER.debug(
                "EditorState updated: path=%s length=%d selection=%d..%d",
                snapshot.file_path,
                len(snapshot.text),
                snapshot.selection_start,
                snapshot.selection_end,
            )

    def replace_selection(self, text: str) -> tuple[int, int] | None:
        """Replace the current selection with ``text``; return the new span."""
        snapshot = self._snapshot
        if snapshot is None:
            return None
        start = snapshot.selection_start
        updated = snapshot.text[:start] + text + snapshot.text[snapshot.selection_end :]
        end = start + len(text)
        self._snapshot = replace(snapshot, text=updated, selection_start=end, selection_end=end)
        return start, end


__all__ = ["EditorSnapshot", "EditorState", "infer_language"]
