"""Prompt text for actions that do not come with a typed message."""

from __future__ import annotations

from typing import Mapping

from .messages import EditorContextCommand, OnboardingPageInteraction
from .model import EditorContextCommandType

_COMMAND_PROMPTS: Mapping[EditorContextCommandType, str] = {
    EditorContextCommandType.EXPLAIN: "Explain selected code",
    EditorContextCommandType.REFACTOR: "Refactor selected code",
    EditorContextCommandType.FIX: "Fix selected code",
    EditorContextCommandType.OPTIMIZE: "Optimize selected code",
    EditorContextCommandType.SEND_TO_PROMPT: "",
}

_ONBOARDING_PROMPTS: Mapping[str, str] = {
    "onboarding-help-cwc-button-clicked": "What can you help me with?",
    "onboarding-examples-button-clicked": "Show me examples of what you can do",
}
_ONBOARDING_FALLBACK = "What can you help me with?"


class PromptGenerator:
    """Maps context-menu commands and onboarding clicks to prompt text."""

    def generate_for_context_menu_command(self, command: EditorContextCommand) -> str:
        return _COMMAND_PROMPTS.get(EditorContextCommandType(command.type), "")

    def generate_for_onboarding_page_interaction(self, interaction: OnboardingPageInteraction) -> str:
        return _ONBOARDING_PROMPTS.get(interaction.type, _ONBOARDING_FALLBACK)


__all__ = ["PromptGenerator"]
