"""Outbound side of the chat controller."""

from __future__ import annotations

import logging

from ..events import EventBus
from .messages import (
    AIResponseMessage,
    AuthNeededMessage,
    EditorContextCommandEcho,
    ErrorMessage,
    OnboardingInteractionEcho,
    OnboardingPageInteraction,
)
from .model import AssistantResponse, EditorContextCommandType, TriggerPayload
from .session import ChatSession
from .telemetry import ChatTelemetryHelper

LOGGER = logging.getLogger(__name__)


class Messenger:
    """Publishes deliveries for the UI surface on the event bus."""

    def __init__(self, bus: EventBus, telemetry: ChatTelemetryHelper) -> None:
        self._bus = bus
        self._telemetry = telemetry

    def send_ai_response(
        self,
        response: AssistantResponse,
        session: ChatSession,
        tab_id: str,
        trigger_id: str,
        payload: TriggerPayload,
    ) -> None:
        self._bus.publish(
            AIResponseMessage(
                tab_id=tab_id,
                trigger_id=trigger_id,
                text=response.text,
                message_id=response.message_id,
                conversation_id=session.session_identifier,
                request_id=response.request_id,
                user_intent=payload.user_intent,
            )
        )
        self._telemetry.record_add_message(response, tab_id=tab_id, trigger_id=trigger_id)

    def send_error_message(self, message: str, tab_id: str | None, request_id: str | None = None) -> None:
        self._bus.publish(ErrorMessage(message=message, tab_id=tab_id, request_id=request_id))

    def send_auth_needed_exception_message(self, credential_state: str, tab_id: str, trigger_id: str) -> None:
        LOGGER.info("Credentials needed for tab %s (state=%s)", tab_id, credential_state)
        self._bus.publish(
            AuthNeededMessage(credential_state=credential_state, tab_id=tab_id, trigger_id=trigger_id)
        )

    def send_editor_context_command_message(
        self, command_type: EditorContextCommandType, code: str, trigger_id: str
    ) -> None:
        self._bus.publish(EditorContextCommandEcho(trigger_id=trigger_id, command_type=command_type, code=code))

    def send_onboarding_page_interaction_message(
        self, interaction: OnboardingPageInteraction, trigger_id: str, prompt: str
    ) -> None:
        self._bus.publish(
            OnboardingInteractionEcho(trigger_id=trigger_id, interaction_type=interaction.type, message=prompt)
        )


__all__ = ["Messenger"]
