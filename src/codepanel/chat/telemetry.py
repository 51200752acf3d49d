"""Telemetry for chat interactions.

:class:`TelemetryClient` buffers chat events and appends them as JSON lines
to ``telemetry.jsonl`` beside the settings file once the user has opted in.
:class:`ChatTelemetryHelper` turns controller activity into those events.
Every ``record_*`` method is fire-and-forget: a failing sink is logged at
debug level and never reaches the controller.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..services.settings import default_settings_dir

if TYPE_CHECKING:  # pragma: no cover
    from ..services.settings import Settings
    from .messages import ChatItemFeedbackMessage
    from .model import AssistantResponse, TriggerEvent, TriggerPayload
    from .session_store import SessionStore

LOGGER = logging.getLogger(__name__)

TELEMETRY_FILENAME = "telemetry.jsonl"


@dataclass(slots=True)
class ChatTelemetryRecord:
    """One chat event waiting to be written."""

    name: str
    tab_id: str | None = None
    conversation_id: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self, session_id: str) -> str:
        payload = {
            "session_id": session_id,
            "name": self.name,
            "timestamp": self.timestamp.isoformat(),
            "tab_id": self.tab_id,
            "conversation_id": self.conversation_id,
            # Enum members (trigger types, intents) are written by value.
            "properties": {key: getattr(value, "value", value) for key, value in self.properties.items()},
        }
        return json.dumps(payload, ensure_ascii=False)


@dataclass(slots=True)
class TelemetryClient:
    """Buffers chat events per process and flushes them to a JSONL file.

    Nothing is buffered while ``enabled`` is false. ``path`` defaults to
    ``telemetry.jsonl`` in :func:`~codepanel.services.settings.default_settings_dir`.
    """

    enabled: bool = False
    path: Path | None = None
    max_buffer: int = 32
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    _buffer: list[ChatTelemetryRecord] = field(default_factory=list, init=False, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings, *, path: Path | None = None) -> TelemetryClient:
        return cls(enabled=bool(settings.telemetry_opt_in), path=path)

    def track_event(
        self,
        name: str,
        *,
        tab_id: str | None = None,
        conversation_id: str | None = None,
        **props: Any,
    ) -> None:
        if not self.enabled:
            return
        self._buffer.append(
            ChatTelemetryRecord(name=name, tab_id=tab_id, conversation_id=conversation_id, properties=props)
        )
        if len(self._buffer) >= self.max_buffer:
            self.flush()

    def flush(self) -> Path | None:
        """Append buffered records to the log file and clear the buffer."""

        if not self.enabled or not self._buffer:
            return None
        target = self.path or default_settings_dir() / TELEMETRY_FILENAME
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("a", encoding="utf-8") as handle:
            for record in self._buffer:
                handle.write(record.to_json(self.session_id))
                handle.write("\n")
        LOGGER.debug("Flushed %d telemetry record(s) to %s", len(self._buffer), target)
        self._buffer.clear()
        return target

    def pending_events(self, tab_id: str | None = None) -> int:
        """Return the number of unflushed records, optionally for one tab."""

        if tab_id is None:
            return len(self._buffer)
        return sum(1 for record in self._buffer if record.tab_id == tab_id)


class ChatTelemetryHelper:
    """Translates controller activity into telemetry events."""

    def __init__(self, sessions: SessionStore, client: TelemetryClient | None = None) -> None:
        self._sessions = sessions
        self._client = client or TelemetryClient(enabled=False)
        # tab id -> conversation id whose start was already recorded
        self._started_conversations: dict[str, str] = {}

    @property
    def client(self) -> TelemetryClient:
        return self._client

    def get_conversation_id(self, tab_id: str | None) -> str | None:
        if not tab_id:
            return None
        session = self._sessions.get(tab_id)
        return session.session_identifier if session else None

    def forget_tab(self, tab_id: str) -> None:
        """Drop per-tab bookkeeping once the tab is closed or cleared."""
        self._started_conversations.pop(tab_id, None)

    # ------------------------------------------------------------------
    # Message interactions
    # ------------------------------------------------------------------

    def record_interact_with_message(
        self,
        interaction: str,
        *,
        tab_id: str | None,
        message_id: str | None = None,
        **extra: Any,
    ) -> None:
        self._track(
            "chat.interact_with_message",
            interaction=interaction,
            tab_id=tab_id,
            message_id=message_id,
            conversation_id=self.get_conversation_id(tab_id),
            **extra,
        )

    def record_feedback(self, message: ChatItemFeedbackMessage) -> None:
        self._track(
            "chat.feedback",
            tab_id=message.tab_id,
            message_id=message.message_id,
            conversation_id=self.get_conversation_id(message.tab_id),
            reason=message.selected_option,
            comment=message.comment,
        )

    def record_code_insertion(
        self,
        *,
        tab_id: str,
        message_id: str,
        start: int,
        end: int,
        file_path: str | None,
    ) -> None:
        self._track(
            "chat.code_insertion",
            tab_id=tab_id,
            message_id=message_id,
            conversation_id=self.get_conversation_id(tab_id) or "",
            start=start,
            end=end,
            file_path=file_path,
        )

    # ------------------------------------------------------------------
    # Focus and tab lifecycle
    # ------------------------------------------------------------------

    def record_open_chat(self, tab_id: str, interaction_type: str) -> None:
        self._track("chat.open", tab_id=tab_id, interaction_type=interaction_type)

    def record_close_chat(self, tab_id: str) -> None:
        self._track("chat.close", tab_id=tab_id, conversation_id=self.get_conversation_id(tab_id))

    def record_enter_focus_conversation(self, tab_id: str) -> None:
        self._track(
            "chat.enter_focus_conversation",
            tab_id=tab_id,
            conversation_id=self.get_conversation_id(tab_id),
        )

    def record_exit_focus_conversation(self, tab_id: str) -> None:
        self._track(
            "chat.exit_focus_conversation",
            tab_id=tab_id,
            conversation_id=self.get_conversation_id(tab_id),
        )

    def record_enter_focus_chat(self) -> None:
        self._track("chat.enter_focus")

    def record_exit_focus_chat(self) -> None:
        self._track("chat.exit_focus")

    # ------------------------------------------------------------------
    # Request outcomes
    # ------------------------------------------------------------------

    def record_start_conversation(self, trigger_event: TriggerEvent, payload: TriggerPayload) -> None:
        """Record the first exchange of a conversation, once per conversation id."""
        tab_id = trigger_event.tab_id
        conversation_id = self.get_conversation_id(tab_id)
        if not tab_id or not conversation_id or self._started_conversations.get(tab_id) == conversation_id:
            return
        self._started_conversations[tab_id] = conversation_id
        self._track(
            "chat.start_conversation",
            tab_id=tab_id,
            conversation_id=conversation_id,
            trigger_type=trigger_event.type,
            user_intent=payload.user_intent,
            has_code_snippet=bool(payload.code_selection and not payload.code_selection.is_empty),
            language=payload.file_language,
        )

    def record_add_message(self, response: AssistantResponse, *, tab_id: str, trigger_id: str) -> None:
        self._track(
            "chat.add_message",
            tab_id=tab_id,
            trigger_id=trigger_id,
            conversation_id=response.conversation_id,
            message_id=response.message_id,
            request_id=response.request_id,
            response_length=len(response.text),
        )

    def record_message_response_error(self, payload: TriggerPayload, *, tab_id: str, status_code: int) -> None:
        self._track(
            "chat.message_response_error",
            tab_id=tab_id,
            conversation_id=self.get_conversation_id(tab_id),
            user_intent=payload.user_intent,
            language=payload.file_language,
            status_code=status_code,
        )

    # ------------------------------------------------------------------

    def _track(self, name: str, **props: Any) -> None:
        try:
            self._client.track_event(name, **props)
        except Exception:
            LOGGER.debug("Telemetry event %s could not be recorded", name, exc_info=True)


__all__ = ["ChatTelemetryHelper", "ChatTelemetryRecord", "TelemetryClient"]
