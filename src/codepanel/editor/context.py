"""Editor context extraction for chat triggers."""

from __future__ import annotations

import keyword
import logging
import re
from typing import Protocol

from ..chat.model import (
    ActiveFileContext,
    CodeQuery,
    EditorContext,
    FocusAreaContext,
    TextSpan,
    TriggerContextKind,
)
from .state import EditorSnapshot, EditorState

LOGGER = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = frozenset(
    {
        "c",
        "cpp",
        "csharp",
        "go",
        "java",
        "javascript",
        "javascriptreact",
        "kotlin",
        "php",
        "python",
        "ruby",
        "rust",
        "scala",
        "shell",
        "sql",
        "typescript",
        "typescriptreact",
    }
)
_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*")
_MAX_NAMES = 25


class EditorContextExtractor(Protocol):
    async def extract_context_for_trigger(self, kind: TriggerContextKind) -> EditorContext | None:
        ...

    def is_code_block_selected(self) -> bool:
        ...


class SnapshotContextExtractor:
    """Builds :class:`EditorContext` from the headless :class:`EditorState`.

    The focus area is the selection widened to whole lines plus
    ``context_lines`` lines on each side. Documents in unsupported languages
    yield a focus area without a ``code_block``.
    """

    def __init__(self, state: EditorState, *, context_lines: int = 10) -> None:
        self._state = state
        self._context_lines = max(0, int(context_lines))

    def is_code_block_selected(self) -> bool:
        snapshot = self._state.snapshot
        return snapshot is not None and snapshot.has_selection

    async def extract_context_for_trigger(self, kind: TriggerContextKind) -> EditorContext | None:
        snapshot = self._state.snapshot
        if snapshot is None:
            LOGGER.debug("No editor snapshot available for %s trigger", kind.value)
            return None
        active = ActiveFileContext(file_path=snapshot.file_path, file_language=snapshot.language)
        return EditorContext(active_file_context=active, focus_area_context=self._focus_area(snapshot))

    def _focus_area(self, snapshot: EditorSnapshot) -> FocusAreaContext:
        if snapshot.language not in SUPPORTED_LANGUAGES:
            return FocusAreaContext()

        text = snapshot.text
        block_start, block_end = self._extended_bounds(text, snapshot.selection_start, snapshot.selection_end)
        selection = TextSpan(snapshot.selection_start - block_start, snapshot.selection_end - block_start)
        return FocusAreaContext(
            code_block=snapshot.selected_text,
            extended_code_block=text[block_start:block_end],
            selection_inside_extended_code_block=selection,
            names=extract_names(snapshot.selected_text),
        )

    def _extended_bounds(self, text: str, start: int, end: int) -> tuple[int, int]:
        block_start = text.rfind("\n", 0, start) + 1
        for _ in range(self._context_lines):
            if block_start == 0:
                break
            block_start = text.rfind("\n", 0, block_start - 1) + 1

        block_end = text.find("\n", end)
        block_end = len(text) if block_end == -1 else block_end
        for _ in range(self._context_lines):
            if block_end >= len(text):
                break
            following = text.find("\n", block_end + 1)
            block_end = len(text) if following == -1 else following
        return block_start, block_end


def extract_names(code: str) -> CodeQuery:
    """Collect identifier names referenced by ``code``."""

    simple: dict[str, None] = {}
    qualified: dict[str, None] = {}
    for match in _IDENTIFIER.finditer(code):
        name = match.group(0)
        if "." in name:
            qualified.setdefault(name, None)
            parts = name.split(".")
        else:
            parts = [name]
        for part in parts:
            if not keyword.iskeyword(part):
                simple.setdefault(part, None)
    return CodeQuery(
        simple_names=tuple(simple)[:_MAX_NAMES],
        fully_qualified_names=tuple(qualified)[:_MAX_NAMES],
    )


__all__ = ["EditorContextExtractor", "SUPPORTED_LANGUAGES", "SnapshotContextExtractor", "extract_names"]
