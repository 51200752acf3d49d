"""Chat controller: routes UI events to per-tab sessions and back.

Each inbound message published on the :class:`~codepanel.events.EventBus`
is handled in its own asyncio task. Handlers record a
:class:`~codepanel.chat.model.TriggerEvent`, collect editor context and hand
the request to :meth:`ChatController.generate_response`, which waits for the
event to be bound to a tab before talking to the backend.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Coroutine

from ..events import EventBus
from .converter import DEFAULT_MAX_FILE_TEXT_CHARS, trigger_payload_to_chat_request
from .errors import (
    EmptyThreadError,
    RequestCancelled,
    TextFailure,
    TriggerEventAlreadyBoundError,
    TriggerEventNotFoundError,
    UnsupportedContextError,
    error_status_code,
    normalize_error,
)
from .messages import (
    INBOUND_MESSAGE_TYPES,
    ChatItemFeedbackMessage,
    ChatItemVotedMessage,
    CopyCodeToClipboard,
    EditorContextCommand,
    InboundMessage,
    InsertCodeAtCursorPosition,
    OnboardingPageInteraction,
    PromptMessage,
    ResponseBodyLinkClickMessage,
    SourceLinkClickMessage,
    StopResponseMessage,
    TabChangedMessage,
    TabClosedMessage,
    TabCreatedMessage,
    TriggerTabIDReceived,
    UIFocusMessage,
)
from .messenger import Messenger
from .model import (
    EditorContextCommandType,
    TriggerContextKind,
    TriggerEvent,
    TriggerPayload,
    TriggerType,
    new_trigger_id,
)
from .prompts import PromptGenerator
from .session import AssistantBackend
from .session_store import SessionStore
from .telemetry import ChatTelemetryHelper, TelemetryClient
from .trigger_store import TriggerEventStore
from .user_intent import UserIntentRecognizer

if TYPE_CHECKING:  # pragma: no cover
    from ..editor.content import EditorContentController
    from ..editor.context import EditorContextExtractor
    from ..services.auth import CredentialStateProvider

LOGGER = logging.getLogger(__name__)

DEFAULT_TAB_BINDING_RETRY_SECONDS = 0.02
MISSING_PROMPT_MESSAGE = "chatMessage should be set"


class ChatController:
    """Orchestrates trigger events, sessions and outbound deliveries.

    Args:
        bus: Bus carrying inbound UI messages and outbound deliveries.
        backend: Assistant service used by every session.
        context_extractor: Source of editor context snapshots.
        content_controller: Writes inserted code back into the editor.
        auth_provider: Credential state checked before each request.
        telemetry: Sink for interaction metrics; disabled when omitted.
        retry_delay: Seconds between tab-binding checks.
        sleep: Awaitable delay used by the tab-binding wait.
        link_opener: Opens links clicked in the panel.
    """

    def __init__(
        self,
        bus: EventBus,
        backend: AssistantBackend,
        *,
        context_extractor: EditorContextExtractor,
        content_controller: EditorContentController,
        auth_provider: CredentialStateProvider,
        telemetry: TelemetryClient | None = None,
        prompt_generator: PromptGenerator | None = None,
        intent_recognizer: UserIntentRecognizer | None = None,
        retry_delay: float = DEFAULT_TAB_BINDING_RETRY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        link_opener: Callable[[str], Any] = webbrowser.open,
        max_file_text_chars: int = DEFAULT_MAX_FILE_TEXT_CHARS,
        session_store: SessionStore | None = None,
        trigger_store: TriggerEventStore | None = None,
    ) -> None:
        self._bus = bus
        self._context_extractor = context_extractor
        self._content_controller = content_controller
        self._auth = auth_provider
        self._prompts = prompt_generator or PromptGenerator()
        self._intents = intent_recognizer or UserIntentRecognizer()
        self._retry_delay = max(0.0, float(retry_delay))
        self._sleep = sleep
        self._open_link = link_opener
        self._max_file_text_chars = max_file_text_chars
        self._sessions = session_store or SessionStore(backend)
        self._triggers = trigger_store or TriggerEventStore()
        self._telemetry = ChatTelemetryHelper(self._sessions, telemetry)
        self._messenger = Messenger(bus, self._telemetry)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._handlers: dict[type[InboundMessage], Callable[[Any], Awaitable[None]]] = {
            PromptMessage: self.process_prompt_chat_message,
            TabCreatedMessage: self.process_tab_created,
            TabClosedMessage: self.process_tab_closed,
            TabChangedMessage: self.process_tab_changed,
            InsertCodeAtCursorPosition: self.process_insert_code_at_cursor_position,
            CopyCodeToClipboard: self.process_copy_code_to_clipboard,
            EditorContextCommand: self.process_context_menu_command,
            TriggerTabIDReceived: self.process_trigger_tab_id_received,
            StopResponseMessage: self.process_stop_response,
            ChatItemVotedMessage: self.process_chat_item_voted,
            ChatItemFeedbackMessage: self.process_chat_item_feedback,
            UIFocusMessage: self.process_ui_focus,
            OnboardingPageInteraction: self.process_onboarding_page_interaction,
            SourceLinkClickMessage: self.process_link_click,
            ResponseBodyLinkClickMessage: self.process_link_click,
        }
        for message_type in INBOUND_MESSAGE_TYPES:
            bus.subscribe(message_type, self._dispatch)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    @property
    def triggers(self) -> TriggerEventStore:
        return self._triggers

    @property
    def messenger(self) -> Messenger:
        return self._messenger

    @property
    def telemetry(self) -> ChatTelemetryHelper:
        return self._telemetry

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Task management
    # ------------------------------------------------------------------

    def _dispatch(self, message: InboundMessage) -> None:
        handler = self._handlers.get(type(message))
        if handler is None:
            LOGGER.warning("No chat handler for %s", type(message).__name__)
            return
        self._spawn(handler(message), name=f"chat:{type(message).__name__}")

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self._guard(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, None], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            LOGGER.debug("Chat task %s cancelled", name)
            raise
        except Exception:
            LOGGER.exception("Chat task %s failed", name)

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait for outstanding handler tasks; return ``False`` if ``timeout`` expired first.

        Tasks are never cancelled here. A request still waiting for its tab
        binding keeps the controller busy until the tab id arrives or the tab
        is closed.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            await asyncio.wait(set(self._tasks), timeout=remaining)
        return True

    async def aclose(self) -> None:
        """Stop listening on the bus and cancel outstanding handler tasks."""
        for message_type in INBOUND_MESSAGE_TYPES:
            self._bus.unsubscribe(message_type, self._dispatch)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        LOGGER.debug("ChatController closed (%d task(s) cancelled)", len(tasks))

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    async def process_prompt_chat_message(self, message: PromptMessage) -> None:
        if message.message is None:
            self._messenger.send_error_message(MISSING_PROMPT_MESSAGE, message.tab_id)
            return
        try:
            if message.prompt_command == "follow-up-was-clicked":
                await self.process_follow_up(message)
            elif message.prompt_command in ("chat-prompt", "onboarding-page-cwc-button-clicked"):
                await self.process_prompt_message_as_new_thread(message)
            elif message.prompt_command == "clear":
                self.process_clear(message.tab_id)
            else:
                LOGGER.warning(
                    "Ignoring unknown prompt command %r for tab %s",
                    message.prompt_command,
                    message.tab_id,
                )
        except Exception as exc:
            self._process_exception(exc, message.tab_id)

    async def process_prompt_message_as_new_thread(self, message: PromptMessage) -> None:
        text = message.message or ""
        context = await self._context_extractor.extract_context_for_trigger(TriggerContextKind.CHAT_MESSAGE)
        event = TriggerEvent(
            id=new_trigger_id(),
            type=TriggerType.CHAT_MESSAGE,
            message=text,
            tab_id=message.tab_id,
            context=context,
        )
        self._triggers.add(event)
        payload = TriggerPayload.from_context(
            text,
            context,
            query=text,
            user_intent=self._intents.get_from_prompt_chat_message(message),
        )
        await self.generate_response(payload, event.id)

    async def process_follow_up(self, message: PromptMessage) -> None:
        text = message.message or ""
        last_event = self._triggers.last_for_tab(message.tab_id)
        if last_event is None:
            raise EmptyThreadError()

        self._telemetry.record_interact_with_message(
            "follow_up",
            tab_id=message.tab_id,
            message_id=message.message_id,
        )
        event = TriggerEvent(
            id=new_trigger_id(),
            type=TriggerType.FOLLOW_UP,
            message=text,
            tab_id=message.tab_id,
            context=last_event.context,
        )
        self._triggers.add(event)
        payload = TriggerPayload.from_context(
            text,
            last_event.context,
            query=text,
            user_intent=self._intents.get_from_prompt_chat_message(message),
        )
        await self.generate_response(payload, event.id)

    def process_clear(self, tab_id: str) -> None:
        """Forget the conversation and every trigger event of ``tab_id``."""
        self._sessions.delete(tab_id)
        self._telemetry.forget_tab(tab_id)
        removed = self._triggers.remove_all_for_tab(tab_id)
        LOGGER.info("Cleared chat history for tab %s (%d trigger event(s))", tab_id, removed)

    # ------------------------------------------------------------------
    # Editor-initiated flows (no tab yet)
    # ------------------------------------------------------------------

    async def process_context_menu_command(self, command: EditorContextCommand) -> None:
        try:
            command_type = EditorContextCommandType(command.type)
            if command_type is EditorContextCommandType.SEND_TO_PROMPT and not (
                self._context_extractor.is_code_block_selected()
            ):
                LOGGER.debug("send-to-prompt without a selection; nothing to send")
                return

            context = await self._context_extractor.extract_context_for_trigger(TriggerContextKind.CONTEXT_MENU)
            focus = context.focus_area_context if context else None
            if focus is None or focus.code_block is None:
                raise UnsupportedContextError()

            if command_type is EditorContextCommandType.SEND_TO_PROMPT:
                self._messenger.send_editor_context_command_message(command_type, focus.code_block, new_trigger_id())
                return

            prompt = self._prompts.generate_for_context_menu_command(command)
            event = TriggerEvent(
                id=new_trigger_id(),
                type=TriggerType.EDITOR_CONTEXT_COMMAND,
                message=prompt,
                context=context,
                command=command_type,
            )
            self._triggers.add(event)
            self._messenger.send_editor_context_command_message(command_type, focus.code_block, event.id)

            payload = TriggerPayload.from_context(
                prompt,
                context,
                user_intent=self._intents.get_from_context_menu_command(command),
            )
            await self.generate_response(payload, event.id)
        except Exception as exc:
            self._process_exception(exc, None)

    async def process_onboarding_page_interaction(self, interaction: OnboardingPageInteraction) -> None:
        try:
            context = await self._context_extractor.extract_context_for_trigger(
                TriggerContextKind.ONBOARDING_PAGE_INTERACTION
            )
            prompt = self._prompts.generate_for_onboarding_page_interaction(interaction)
            event = TriggerEvent(
                id=new_trigger_id(),
                type=TriggerType.ONBOARDING_PAGE_INTERACTION,
                message=prompt,
                context=context,
                onboarding_page_interaction=interaction.type,
            )
            self._triggers.add(event)
            self._messenger.send_onboarding_page_interaction_message(interaction, event.id, prompt)
            payload = TriggerPayload.from_context(
                prompt,
                context,
                user_intent=self._intents.get_from_onboarding_page_interaction(interaction),
            )
            await self.generate_response(payload, event.id)
        except Exception as exc:
            self._process_exception(exc, None)

    async def process_trigger_tab_id_received(self, message: TriggerTabIDReceived) -> None:
        try:
            self._triggers.rebind(message.trigger_id, message.tab_id)
        except TriggerEventNotFoundError:
            LOGGER.debug("Tab id %s arrived for unknown trigger %s", message.tab_id, message.trigger_id)
        except TriggerEventAlreadyBoundError as exc:
            LOGGER.error("%s", exc)

    # ------------------------------------------------------------------
    # Tab lifecycle and focus
    # ------------------------------------------------------------------

    async def process_tab_created(self, message: TabCreatedMessage) -> None:
        self._telemetry.record_open_chat(message.tab_id, message.tab_open_interaction_type)

    async def process_tab_closed(self, message: TabClosedMessage) -> None:
        self._telemetry.record_close_chat(message.tab_id)
        self._telemetry.forget_tab(message.tab_id)
        self._sessions.delete(message.tab_id)
        removed = self._triggers.remove_all_for_tab(message.tab_id)
        LOGGER.debug("Tab %s closed; dropped %d trigger event(s)", message.tab_id, removed)

    async def process_tab_changed(self, message: TabChangedMessage) -> None:
        if message.prev_tab_id:
            self._telemetry.record_exit_focus_conversation(message.prev_tab_id)
        self._telemetry.record_enter_focus_conversation(message.tab_id)

    async def process_ui_focus(self, message: UIFocusMessage) -> None:
        if message.type == "focus":
            self._telemetry.record_enter_focus_chat()
        elif message.type == "blur":
            self._telemetry.record_exit_focus_chat()
        else:
            LOGGER.debug("Ignoring UI focus type %r", message.type)

    # ------------------------------------------------------------------
    # Message interactions
    # ------------------------------------------------------------------

    async def process_stop_response(self, message: StopResponseMessage) -> None:
        session = self._sessions.get(message.tab_id)
        if session is None:
            LOGGER.debug("Stop requested for tab %s without a session", message.tab_id)
            return
        session.cancel()

    async def process_insert_code_at_cursor_position(self, message: InsertCodeAtCursorPosition) -> None:
        self._telemetry.record_interact_with_message(
            "insert_at_cursor",
            tab_id=message.tab_id,
            message_id=message.message_id,
            code_length=len(message.code),
        )
        inserted = self._content_controller.insert_text_at_cursor(message.code)
        if inserted is None:
            return
        self._telemetry.record_code_insertion(
            tab_id=message.tab_id,
            message_id=message.message_id,
            start=inserted.start,
            end=inserted.end,
            file_path=inserted.file_path,
        )

    async def process_copy_code_to_clipboard(self, message: CopyCodeToClipboard) -> None:
        self._telemetry.record_interact_with_message(
            "copy_snippet",
            tab_id=message.tab_id,
            message_id=message.message_id,
            code_length=len(message.code),
        )

    async def process_chat_item_voted(self, message: ChatItemVotedMessage) -> None:
        self._telemetry.record_interact_with_message(
            message.vote,
            tab_id=message.tab_id,
            message_id=message.message_id,
        )

    async def process_chat_item_feedback(self, message: ChatItemFeedbackMessage) -> None:
        self._telemetry.record_feedback(message)

    async def process_link_click(self, message: SourceLinkClickMessage | ResponseBodyLinkClickMessage) -> None:
        interaction = "click_link" if isinstance(message, SourceLinkClickMessage) else "click_body_link"
        self._telemetry.record_interact_with_message(
            interaction,
            tab_id=message.tab_id,
            message_id=message.message_id,
            link=message.link,
        )
        self._open_link(message.link)

    # ------------------------------------------------------------------
    # Response orchestration
    # ------------------------------------------------------------------

    async def generate_response(self, payload: TriggerPayload, trigger_id: str) -> None:
        """Send ``payload`` once its trigger event is bound and route the outcome.

        Returns without delivering anything when the trigger event disappears
        before or while the request runs.
        """
        event = await self._wait_for_tab_binding(trigger_id)
        if event is None:
            LOGGER.debug("Trigger %s no longer exists; dropping request", trigger_id)
            return
        tab_id = event.tab_id
        assert tab_id is not None

        try:
            credential_state = await self._auth.get_credential_state()
            if credential_state:
                self._messenger.send_auth_needed_exception_message(credential_state, tab_id, trigger_id)
                return

            request = trigger_payload_to_chat_request(payload, max_file_text_chars=self._max_file_text_chars)
            session = self._sessions.get_or_create(tab_id)
            token = session.new_cancellation_token()
            LOGGER.info(
                "Chat request: tab=%s trigger=%s conversation=%s generation=%d",
                tab_id,
                trigger_id,
                session.session_identifier,
                token.generation,
            )
            LOGGER.debug("Chat request details: %s", request.as_log_dict())
            response = await session.send(request)
        except RequestCancelled as exc:
            LOGGER.info("Chat request cancelled: tab=%s trigger=%s generation=%s", tab_id, trigger_id, exc.generation)
            return
        except Exception as exc:
            if trigger_id not in self._triggers:
                LOGGER.debug("Discarding failure for closed tab %s: %s", tab_id, exc)
                return
            self._process_exception(exc, tab_id)
            self._telemetry.record_message_response_error(
                payload,
                tab_id=tab_id,
                status_code=error_status_code(exc),
            )
            return

        if trigger_id not in self._triggers:
            LOGGER.debug("Discarding response for closed tab %s (trigger %s)", tab_id, trigger_id)
            return

        LOGGER.info(
            "Chat response: tab=%s trigger=%s conversation=%s request_id=%s",
            tab_id,
            trigger_id,
            response.conversation_id,
            response.request_id,
        )
        self._telemetry.record_enter_focus_conversation(tab_id)
        self._telemetry.record_start_conversation(event, payload)
        self._messenger.send_ai_response(response, session, tab_id, trigger_id, payload)

    async def _wait_for_tab_binding(self, trigger_id: str) -> TriggerEvent | None:
        # No retry limit: the loop ends when the event is bound or removed.
        while True:
            event = self._triggers.get(trigger_id)
            if event is None or event.tab_id is not None:
                return event
            await self._sleep(self._retry_delay)

    def _process_exception(self, error: BaseException, tab_id: str | None) -> None:
        details = normalize_error(error)
        LOGGER.error(
            "Chat request failed: tab=%s request_id=%s error=%s",
            tab_id,
            details.request_id,
            details.message,
            exc_info=None if isinstance(error, TextFailure) else error,
        )
        self._messenger.send_error_message(details.message, tab_id, details.request_id)
        if tab_id is not None:
            self._sessions.delete(tab_id)


__all__ = ["ChatController", "DEFAULT_TAB_BINDING_RETRY_SECONDS", "MISSING_PROMPT_MESSAGE"]
