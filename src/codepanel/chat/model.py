"""Domain types shared by the chat controller and its collaborators."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class TriggerType(str, Enum):
    """What kind of user action produced a trigger event."""

    CHAT_MESSAGE = "chat_message"
    FOLLOW_UP = "follow_up"
    EDITOR_CONTEXT_COMMAND = "editor_context_command"
    ONBOARDING_PAGE_INTERACTION = "onboarding_page_interaction"


class ChatTriggerType(str, Enum):
    """How the backend should treat the request."""

    MANUAL = "MANUAL"
    DIAGNOSTIC = "DIAGNOSTIC"


class TriggerContextKind(str, Enum):
    """Origin passed to the editor context extractor."""

    CHAT_MESSAGE = "ChatMessage"
    CONTEXT_MENU = "ContextMenu"
    ONBOARDING_PAGE_INTERACTION = "OnboardingPageInteraction"


class UserIntent(str, Enum):
    """Intent tags understood by the assistant backend."""

    SUGGEST_ALTERNATE_IMPLEMENTATION = "SUGGEST_ALTERNATE_IMPLEMENTATION"
    APPLY_COMMON_BEST_PRACTICES = "APPLY_COMMON_BEST_PRACTICES"
    IMPROVE_CODE = "IMPROVE_CODE"
    SHOW_EXAMPLES = "SHOW_EXAMPLES"
    CITE_SOURCES = "CITE_SOURCES"
    EXPLAIN_LINE_BY_LINE = "EXPLAIN_LINE_BY_LINE"
    EXPLAIN_CODE_SELECTION = "EXPLAIN_CODE_SELECTION"


class EditorContextCommandType(str, Enum):
    """Context-menu actions the editor can send to the panel."""

    EXPLAIN = "explain"
    REFACTOR = "refactor"
    FIX = "fix"
    OPTIMIZE = "optimize"
    SEND_TO_PROMPT = "send-to-prompt"


# ---------------------------------------------------------------------------
# Editor context snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TextSpan:
    """Half-open character range ``[start, end)`` inside a block of text."""

    start: int
    end: int

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start


@dataclass(frozen=True, slots=True)
class CodeQuery:
    """Identifier names found around the selection."""

    simple_names: tuple[str, ...] = ()
    fully_qualified_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ActiveFileContext:
    file_path: str | None = None
    file_language: str | None = None
    match_policy: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class FocusAreaContext:
    """Selected code plus the surrounding block sent for grounding.

    Attributes:
        code_block: The selected text, or ``None`` when the language is not
            supported or nothing could be extracted.
        extended_code_block: The selection widened to whole surrounding lines.
        selection_inside_extended_code_block: Where the selection sits inside
            ``extended_code_block``.
        names: Identifiers referenced by the selection.
    """

    code_block: str | None = None
    extended_code_block: str | None = None
    selection_inside_extended_code_block: TextSpan | None = None
    names: CodeQuery | None = None


@dataclass(frozen=True, slots=True)
class EditorContext:
    """Point-in-time snapshot of editor state attached to a trigger event."""

    active_file_context: ActiveFileContext | None = None
    focus_area_context: FocusAreaContext | None = None


# ---------------------------------------------------------------------------
# Trigger events and payloads
# ---------------------------------------------------------------------------


def new_trigger_id() -> str:
    """Return a fresh correlation identifier."""

    return uuid.uuid4().hex


@dataclass(slots=True)
class TriggerEvent:
    """Durable record of one user action awaiting a response.

    ``tab_id`` is the only mutable field and may only move from ``None`` to a
    concrete tab once; :class:`~codepanel.chat.trigger_store.TriggerEventStore`
    enforces that.
    """

    id: str
    type: TriggerType
    message: str
    tab_id: str | None = None
    context: EditorContext | None = None
    command: Any | None = None
    onboarding_page_interaction: Any | None = None

    @property
    def is_bound(self) -> bool:
        return self.tab_id is not None


@dataclass(frozen=True, slots=True)
class TriggerPayload:
    """Everything the orchestrator needs to build a backend request."""

    message: str
    trigger: ChatTriggerType = ChatTriggerType.MANUAL
    query: str | None = None
    code_selection: TextSpan | None = None
    file_text: str | None = None
    file_language: str | None = None
    file_path: str | None = None
    match_policy: Mapping[str, Any] | None = None
    code_query: CodeQuery | None = None
    user_intent: UserIntent | None = None

    @classmethod
    def from_context(
        cls,
        message: str,
        context: EditorContext | None,
        *,
        query: str | None = None,
        user_intent: UserIntent | None = None,
    ) -> "TriggerPayload":
        active = context.active_file_context if context else None
        focus = context.focus_area_context if context else None
        return cls(
            message=message,
            trigger=ChatTriggerType.MANUAL,
            query=query,
            code_selection=focus.selection_inside_extended_code_block if focus else None,
            file_text=focus.extended_code_block if focus else None,
            file_language=active.file_language if active else None,
            file_path=active.file_path if active else None,
            match_policy=active.match_policy if active else None,
            code_query=focus.names if focus else None,
            user_intent=user_intent,
        )


# ---------------------------------------------------------------------------
# Backend request / response
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EditorState:
    """Document portion of a backend request."""

    file_path: str | None
    language: str | None
    text: str
    selection: TextSpan | None = None
    symbols: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ChatRequest:
    """Backend-facing request derived from a :class:`TriggerPayload`."""

    message: str
    trigger_type: ChatTriggerType = ChatTriggerType.MANUAL
    user_intent: UserIntent | None = None
    editor_state: EditorState | None = None

    def as_log_dict(self) -> dict[str, Any]:
        state = self.editor_state
        return {
            "message_length": len(self.message),
            "trigger_type": self.trigger_type.value,
            "user_intent": self.user_intent.value if self.user_intent else None,
            "file_path": state.file_path if state else None,
            "language": state.language if state else None,
            "text_length": len(state.text) if state else 0,
        }


@dataclass(slots=True)
class AssistantResponse:
    """Completed backend response plus the metadata the controller needs."""

    text: str
    conversation_id: str | None = None
    message_id: str | None = None
    request_id: str | None = None
    http_status: int | None = None
    model: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "ActiveFileContext",
    "AssistantResponse",
    "ChatRequest",
    "ChatTriggerType",
    "CodeQuery",
    "EditorContext",
    "EditorContextCommandType",
    "EditorState",
    "FocusAreaContext",
    "TextSpan",
    "TriggerContextKind",
    "TriggerEvent",
    "TriggerPayload",
    "TriggerType",
    "UserIntent",
    "new_trigger_id",
]
