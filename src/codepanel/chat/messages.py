"""Inbound UI messages and outbound deliveries exchanged with the panel.

Every message is an :class:`~codepanel.events.Event` so it can travel over
the shared :class:`~codepanel.events.EventBus`. Each class carries the wire
``command`` name used by :mod:`codepanel.services.bridge`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Literal

from ..events import Event, event_payload, mark_quiet
from .model import EditorContextCommandType, UserIntent

PromptCommand = Literal[
    "chat-prompt",
    "follow-up-was-clicked",
    "onboarding-page-cwc-button-clicked",
    "clear",
]
FocusType = Literal["focus", "blur"]
Vote = Literal["upvote", "downvote"]


@dataclass(slots=True)
class InboundMessage(Event):
    """Base class for messages sent by the UI surface."""

    command: ClassVar[str] = ""


@dataclass(slots=True)
class OutboundMessage(Event):
    """Base class for deliveries sent back to the UI surface."""

    command: ClassVar[str] = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"command": self.command}
        for key, value in event_payload(self).items():
            payload[key] = getattr(value, "value", value)
        return payload


# =============================================================================
# Inbound
# =============================================================================


@dataclass(slots=True)
class PromptMessage(InboundMessage):
    """A typed prompt, follow-up click or slash command from a tab.

    ``prompt_command`` distinguishes the variants; ``message`` is ``None``
    only when the UI sent a malformed prompt.
    """

    tab_id: str
    prompt_command: str
    message: str | None = None
    message_id: str | None = None
    user_intent: UserIntent | None = None

    command: ClassVar[str] = "chat-prompt"


@dataclass(slots=True)
class TabCreatedMessage(InboundMessage):
    tab_id: str
    tab_open_interaction_type: str = "click"

    command: ClassVar[str] = "new-tab-was-created"


@dataclass(slots=True)
class TabClosedMessage(InboundMessage):
    tab_id: str

    command: ClassVar[str] = "tab-was-removed"


@dataclass(slots=True)
class TabChangedMessage(InboundMessage):
    tab_id: str
    prev_tab_id: str | None = None

    command: ClassVar[str] = "tab-was-changed"


@dataclass(slots=True)
class InsertCodeAtCursorPosition(InboundMessage):
    tab_id: str
    message_id: str
    code: str

    command: ClassVar[str] = "insert_code_at_cursor_position"


@dataclass(slots=True)
class CopyCodeToClipboard(InboundMessage):
    tab_id: str
    message_id: str
    code: str

    command: ClassVar[str] = "code_was_copied_to_clipboard"


@dataclass(slots=True)
class EditorContextCommand(InboundMessage):
    """Context-menu action invoked from the editor, before any tab exists."""

    type: EditorContextCommandType

    command: ClassVar[str] = "editor-context-command"


@dataclass(slots=True)
class TriggerTabIDReceived(InboundMessage):
    """The UI attached a tab to a trigger created without one."""

    trigger_id: str
    tab_id: str

    command: ClassVar[str] = "trigger-tabID-received"


@dataclass(slots=True)
class StopResponseMessage(InboundMessage):
    tab_id: str

    command: ClassVar[str] = "stop-response"


@dataclass(slots=True)
class ChatItemVotedMessage(InboundMessage):
    tab_id: str
    message_id: str
    vote: Vote

    command: ClassVar[str] = "chat-item-voted"


@dataclass(slots=True)
class ChatItemFeedbackMessage(InboundMessage):
    tab_id: str
    message_id: str
    selected_option: str
    comment: str | None = None

    command: ClassVar[str] = "chat-item-feedback"


@mark_quiet
@dataclass(slots=True)
class UIFocusMessage(InboundMessage):
    type: FocusType

    command: ClassVar[str] = "ui-focus"


@dataclass(slots=True)
class OnboardingPageInteraction(InboundMessage):
    type: str

    command: ClassVar[str] = "onboarding-page-interaction"


@dataclass(slots=True)
class SourceLinkClickMessage(InboundMessage):
    tab_id: str
    message_id: str
    link: str

    command: ClassVar[str] = "source-link-click"


@dataclass(slots=True)
class ResponseBodyLinkClickMessage(InboundMessage):
    tab_id: str
    message_id: str
    link: str

    command: ClassVar[str] = "response-body-link-click"


# =============================================================================
# Outbound
# =============================================================================


@dataclass(slots=True)
class AIResponseMessage(OutboundMessage):
    """A completed assistant answer for ``tab_id``."""

    tab_id: str
    trigger_id: str
    text: str
    message_id: str | None = None
    conversation_id: str | None = None
    request_id: str | None = None
    user_intent: UserIntent | None = None

    command: ClassVar[str] = "chat-answer"


@dataclass(slots=True)
class ErrorMessage(OutboundMessage):
    """A normalized failure rendered against ``tab_id``.

    ``tab_id`` is ``None`` for failures raised before any tab was attached
    (context-menu and onboarding flows); the UI shows them in the active tab.
    """

    message: str
    tab_id: str | None
    request_id: str | None = None

    command: ClassVar[str] = "error-message"


@dataclass(slots=True)
class AuthNeededMessage(OutboundMessage):
    credential_state: str
    tab_id: str
    trigger_id: str

    command: ClassVar[str] = "auth-needed-exception"


@dataclass(slots=True)
class EditorContextCommandEcho(OutboundMessage):
    """Echo of a context-menu action so the UI can open a tab for it."""

    trigger_id: str
    command_type: EditorContextCommandType
    code: str

    command: ClassVar[str] = "editor-context-command-message"


@dataclass(slots=True)
class OnboardingInteractionEcho(OutboundMessage):
    trigger_id: str
    interaction_type: str
    message: str

    command: ClassVar[str] = "onboarding-page-interaction-message"


INBOUND_MESSAGE_TYPES: tuple[type[InboundMessage], ...] = (
    PromptMessage,
    TabCreatedMessage,
    TabClosedMessage,
    TabChangedMessage,
    InsertCodeAtCursorPosition,
    CopyCodeToClipboard,
    EditorContextCommand,
    TriggerTabIDReceived,
    StopResponseMessage,
    ChatItemVotedMessage,
    ChatItemFeedbackMessage,
    UIFocusMessage,
    OnboardingPageInteraction,
    SourceLinkClickMessage,
    ResponseBodyLinkClickMessage,
)

OUTBOUND_MESSAGE_TYPES: tuple[type[OutboundMessage], ...] = (
    AIResponseMessage,
    ErrorMessage,
    AuthNeededMessage,
    EditorContextCommandEcho,
    OnboardingInteractionEcho,
)


__all__ = [
    "AIResponseMessage",
    "AuthNeededMessage",
    "ChatItemFeedbackMessage",
    "ChatItemVotedMessage",
    "CopyCodeToClipboard",
    "EditorContextCommand",
    "EditorContextCommandEcho",
    "ErrorMessage",
    "INBOUND_MESSAGE_TYPES",
    "InboundMessage",
    "InsertCodeAtCursorPosition",
    "OUTBOUND_MESSAGE_TYPES",
    "OnboardingInteractionEcho",
    "OnboardingPageInteraction",
    "OutboundMessage",
    "PromptMessage",
    "ResponseBodyLinkClickMessage",
    "SourceLinkClickMessage",
    "StopResponseMessage",
    "TabChangedMessage",
    "TabClosedMessage",
    "TabCreatedMessage",
    "TriggerTabIDReceived",
    "UIFocusMessage",
]
