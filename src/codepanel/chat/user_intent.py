"""Keyword-based user intent tagging."""

from __future__ import annotations

import re
from typing import Mapping, Sequence

from .messages import EditorContextCommand, OnboardingPageInteraction, PromptMessage
from .model import EditorContextCommandType, UserIntent

_COMMAND_INTENTS: Mapping[EditorContextCommandType, UserIntent | None] = {
    EditorContextCommandType.EXPLAIN: UserIntent.EXPLAIN_CODE_SELECTION,
    EditorContextCommandType.REFACTOR: UserIntent.SUGGEST_ALTERNATE_IMPLEMENTATION,
    EditorContextCommandType.FIX: UserIntent.APPLY_COMMON_BEST_PRACTICES,
    EditorContextCommandType.OPTIMIZE: UserIntent.IMPROVE_CODE,
    EditorContextCommandType.SEND_TO_PROMPT: None,
}

# Checked in order; the first pattern that matches wins.
_PROMPT_PATTERNS: Sequence[tuple[re.Pattern[str], UserIntent]] = (
    (re.compile(r"\bexplain\b.*\bline[\s-]+by[\s-]+line\b"), UserIntent.EXPLAIN_LINE_BY_LINE),
    (re.compile(r"\bexplain\b"), UserIntent.EXPLAIN_CODE_SELECTION),
    (re.compile(r"\b(alternat(e|ive)|another way|refactor)\b"), UserIntent.SUGGEST_ALTERNATE_IMPLEMENTATION),
    (re.compile(r"\bbest practices?\b"), UserIntent.APPLY_COMMON_BEST_PRACTICES),
    (re.compile(r"\b(improve|optimi[sz]e)\b"), UserIntent.IMPROVE_CODE),
    (re.compile(r"\b(example|examples)\b"), UserIntent.SHOW_EXAMPLES),
    (re.compile(r"\b(cite|sources?|references?)\b"), UserIntent.CITE_SOURCES),
)


class UserIntentRecognizer:
    """Derives an intent tag from prompts, commands and onboarding clicks."""

    def get_from_prompt_chat_message(self, prompt: PromptMessage) -> UserIntent | None:
        if prompt.user_intent is not None:
            return prompt.user_intent
        text = (prompt.message or "").strip().lower()
        if not text:
            return None
        for pattern, intent in _PROMPT_PATTERNS:
            if pattern.search(text):
                return intent
        return None

    def get_from_context_menu_command(self, command: EditorContextCommand) -> UserIntent | None:
        return _COMMAND_INTENTS.get(EditorContextCommandType(command.type))

    def get_from_onboarding_page_interaction(self, interaction: OnboardingPageInteraction) -> UserIntent | None:
        del interaction
        return None


__all__ = ["UserIntentRecognizer"]
