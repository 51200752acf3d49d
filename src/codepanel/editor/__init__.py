"""Headless editor state and the context/content adapters built on it."""

from .content import EditorContentController, InsertionRange, SnapshotContentController
from .context import EditorContextExtractor, SnapshotContextExtractor
from .state import EditorSnapshot, EditorState

__all__ = [
    "EditorContentController",
    "EditorContextExtractor",
    "EditorSnapshot",
    "EditorState",
    "InsertionRange",
    "SnapshotContentController",
    "SnapshotContextExtractor",
]
