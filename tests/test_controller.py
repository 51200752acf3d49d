"""Tests for the chat controller's trigger, session and error routing."""

from __future__ import annotations

import asyncio

import pytest

from codepanel.chat.controller import MISSING_PROMPT_MESSAGE, ChatController
from codepanel.chat.errors import (
    EMPTY_THREAD_MESSAGE,
    UNSUPPORTED_CONTEXT_MESSAGE,
    BackendServiceError,
    MalformedResponseError,
)
from codepanel.chat.messages import (
    AIResponseMessage,
    AuthNeededMessage,
    ChatItemFeedbackMessage,
    ChatItemVotedMessage,
    CopyCodeToClipboard,
    EditorContextCommand,
    EditorContextCommandEcho,
    ErrorMessage,
    InsertCodeAtCursorPosition,
    OnboardingInteractionEcho,
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
from codepanel.chat.model import (
    EditorContextCommandType,
    TriggerContextKind,
    TriggerEvent,
    TriggerType,
    UserIntent,
)
from codepanel.editor.content import InsertionRange
from codepanel.events import EventBus

from helpers import (
    FakeBackend,
    ManualSleep,
    Outbox,
    RecordingContentController,
    RecordingTelemetry,
    StubContextExtractor,
    StubCredentials,
    make_context,
)


def _prompt(
    tab_id: str = "tab-1",
    message: str | None = "Explain this function",
    *,
    prompt_command: str = "chat-prompt",
) -> PromptMessage:
    return PromptMessage(tab_id=tab_id, prompt_command=prompt_command, message=message)


# ---------------------------------------------------------------------------
# Typed prompts
# ---------------------------------------------------------------------------


class TestPrompts:
    @pytest.mark.asyncio
    async def test_prompt_delivers_single_answer_to_its_tab(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        bus.publish(_prompt())
        await controller.wait_idle()

        answers = outbox.of_type(AIResponseMessage)
        assert len(answers) == 1
        assert answers[0].tab_id == "tab-1"
        assert answers[0].text == "answer 1"
        assert answers[0].conversation_id == "conv-1"
        assert answers[0].user_intent is UserIntent.EXPLAIN_CODE_SELECTION
        assert outbox.of_type(ErrorMessage) == []

        request = backend.calls[0]["request"]
        assert request.message == "Explain this function"
        assert request.editor_state is not None
        assert request.editor_state.file_path == "src/calc.py"
        assert controller.sessions.get("tab-1").session_identifier == "conv-1"

    @pytest.mark.asyncio
    async def test_prompt_extracts_context_for_chat_message(
        self, bus: EventBus, controller: ChatController, extractor: StubContextExtractor
    ) -> None:
        bus.publish(_prompt())
        await controller.wait_idle()

        assert extractor.kinds == [TriggerContextKind.CHAT_MESSAGE]
        events = controller.triggers.events_for_tab("tab-1")
        assert [event.type for event in events] == [TriggerType.CHAT_MESSAGE]

    @pytest.mark.asyncio
    async def test_prompt_without_message_reports_error(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        bus.publish(_prompt(message=None))
        await controller.wait_idle()

        errors = outbox.of_type(ErrorMessage)
        assert [error.message for error in errors] == [MISSING_PROMPT_MESSAGE]
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_context_extraction_failure_is_reported_to_tab(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, extractor: StubContextExtractor
    ) -> None:
        extractor.error = RuntimeError("index offline")

        bus.publish(_prompt())
        await controller.wait_idle()

        errors = outbox.of_type(ErrorMessage)
        assert len(errors) == 1
        assert errors[0].message == "index offline"
        assert errors[0].tab_id == "tab-1"

    @pytest.mark.asyncio
    async def test_clear_forgets_session_and_trigger_events(
        self, bus: EventBus, controller: ChatController
    ) -> None:
        bus.publish(_prompt())
        await controller.wait_idle()
        assert "tab-1" in controller.sessions

        bus.publish(_prompt(message="/clear", prompt_command="clear"))
        await controller.wait_idle()

        assert "tab-1" not in controller.sessions
        assert controller.triggers.events_for_tab("tab-1") == []


# ---------------------------------------------------------------------------
# Follow-ups
# ---------------------------------------------------------------------------


class TestFollowUps:
    @pytest.mark.asyncio
    async def test_follow_up_on_empty_tab_reports_empty_thread(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        bus.publish(_prompt("tab-2", "What else?", prompt_command="follow-up-was-clicked"))
        await controller.wait_idle()

        errors = outbox.of_type(ErrorMessage)
        assert len(errors) == 1
        assert errors[0].message == EMPTY_THREAD_MESSAGE.upper()
        assert errors[0].tab_id == "tab-2"
        assert "tab-2" not in controller.sessions
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_follow_up_reuses_last_context_and_conversation(
        self,
        bus: EventBus,
        controller: ChatController,
        outbox: Outbox,
        backend: FakeBackend,
        extractor: StubContextExtractor,
    ) -> None:
        bus.publish(_prompt())
        await controller.wait_idle()
        extractor.context = None

        bus.publish(_prompt(message="Show an example", prompt_command="follow-up-was-clicked"))
        await controller.wait_idle()

        assert len(outbox.of_type(AIResponseMessage)) == 2
        follow_up = backend.calls[1]
        assert follow_up["conversation_id"] == "conv-1"
        assert len(follow_up["history"]) == 2
        assert follow_up["request"].editor_state.text == "total = add(a, b)"
        assert follow_up["request"].user_intent is UserIntent.SHOW_EXAMPLES
        types = [event.type for event in controller.triggers.events_for_tab("tab-1")]
        assert types == [TriggerType.CHAT_MESSAGE, TriggerType.FOLLOW_UP]


# ---------------------------------------------------------------------------
# Tab binding
# ---------------------------------------------------------------------------


class TestTabBinding:
    @pytest.mark.asyncio
    async def test_unbound_trigger_never_delivers_and_stops_when_removed(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend, sleeper: ManualSleep
    ) -> None:
        def remove_after_five(calls: int) -> None:
            if calls == 5:
                trigger_id = outbox.of_type(EditorContextCommandEcho)[0].trigger_id
                controller.triggers.remove(trigger_id)

        sleeper.on_sleep = remove_after_five

        bus.publish(EditorContextCommand(type=EditorContextCommandType.EXPLAIN))
        await controller.wait_idle()

        assert sleeper.calls == 5
        assert set(sleeper.delays) == {0.02}
        assert backend.calls == []
        assert outbox.of_type(AIResponseMessage) == []
        assert outbox.of_type(ErrorMessage) == []

    @pytest.mark.asyncio
    async def test_rebind_delivers_exactly_one_answer(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend, sleeper: ManualSleep
    ) -> None:
        def bind_on_third_check(calls: int) -> None:
            if calls == 3:
                echo = outbox.of_type(EditorContextCommandEcho)[0]
                bus.publish(TriggerTabIDReceived(trigger_id=echo.trigger_id, tab_id="tab-7"))

        sleeper.on_sleep = bind_on_third_check

        bus.publish(EditorContextCommand(type=EditorContextCommandType.EXPLAIN))
        await controller.wait_idle()

        echo = outbox.of_type(EditorContextCommandEcho)[0]
        answers = outbox.of_type(AIResponseMessage)
        assert len(answers) == 1
        assert answers[0].trigger_id == echo.trigger_id
        assert answers[0].tab_id == "tab-7"
        assert outbox.of_type(ErrorMessage) == []
        assert sleeper.calls >= 3

        request = backend.calls[0]["request"]
        assert request.message == "Explain selected code"
        assert request.user_intent is UserIntent.EXPLAIN_CODE_SELECTION

    @pytest.mark.asyncio
    async def test_concurrent_waits_bind_independently(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, sleeper: ManualSleep
    ) -> None:
        bound: list[str] = []

        def bind_in_reverse(calls: int) -> None:
            echoes = outbox.of_type(EditorContextCommandEcho)
            if len(echoes) < 2:
                return
            if calls >= 4 and "B" not in bound:
                controller.triggers.rebind(echoes[1].trigger_id, "tab-B")
                bound.append("B")
            elif calls >= 6 and "A" not in bound:
                controller.triggers.rebind(echoes[0].trigger_id, "tab-A")
                bound.append("A")

        sleeper.on_sleep = bind_in_reverse

        bus.publish(EditorContextCommand(type=EditorContextCommandType.REFACTOR))
        bus.publish(EditorContextCommand(type=EditorContextCommandType.OPTIMIZE))
        await controller.wait_idle()

        echoes = outbox.of_type(EditorContextCommandEcho)
        routed = {answer.trigger_id: answer.tab_id for answer in outbox.of_type(AIResponseMessage)}
        assert routed == {echoes[0].trigger_id: "tab-A", echoes[1].trigger_id: "tab-B"}

    @pytest.mark.asyncio
    async def test_rebind_of_unknown_trigger_is_ignored(
        self, bus: EventBus, controller: ChatController, outbox: Outbox
    ) -> None:
        bus.publish(TriggerTabIDReceived(trigger_id="gone", tab_id="tab-1"))
        await controller.wait_idle()

        assert outbox.messages == []

    @pytest.mark.asyncio
    async def test_second_rebind_keeps_first_tab(self, bus: EventBus, controller: ChatController) -> None:
        event = TriggerEvent(id="t-1", type=TriggerType.EDITOR_CONTEXT_COMMAND, message="Fix selected code")
        controller.triggers.add(event)

        bus.publish(TriggerTabIDReceived(trigger_id="t-1", tab_id="tab-A"))
        bus.publish(TriggerTabIDReceived(trigger_id="t-1", tab_id="tab-B"))
        await controller.wait_idle()

        assert controller.triggers.get("t-1").tab_id == "tab-A"


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_credentials_send_auth_needed_without_request(
    bus: EventBus,
    controller: ChatController,
    outbox: Outbox,
    backend: FakeBackend,
    credentials: StubCredentials,
) -> None:
    credentials.state = "missing"

    bus.publish(_prompt())
    await controller.wait_idle()

    notices = outbox.of_type(AuthNeededMessage)
    assert len(notices) == 1
    assert notices[0].credential_state == "missing"
    assert notices[0].tab_id == "tab-1"
    assert notices[0].trigger_id == controller.triggers.events_for_tab("tab-1")[0].id
    assert backend.calls == []
    assert "tab-1" not in controller.sessions
    assert outbox.of_type(ErrorMessage) == []


# ---------------------------------------------------------------------------
# Backend failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_service_error_is_delivered_and_session_reset(
        self,
        bus: EventBus,
        controller: ChatController,
        outbox: Outbox,
        backend: FakeBackend,
        telemetry: RecordingTelemetry,
    ) -> None:
        backend.outcomes.append(BackendServiceError("Too many requests", request_id="req-9", status_code=429))

        bus.publish(_prompt())
        await controller.wait_idle()

        errors = outbox.of_type(ErrorMessage)
        assert len(errors) == 1
        assert errors[0].message == "Too many requests"
        assert errors[0].request_id == "req-9"
        assert errors[0].tab_id == "tab-1"
        assert "tab-1" not in controller.sessions
        assert outbox.of_type(AIResponseMessage) == []
        assert telemetry.find("chat.message_response_error")[0]["status_code"] == 429

    @pytest.mark.asyncio
    async def test_malformed_response_uses_reason(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        backend.outcomes.append(MalformedResponseError({"reason": "Bad Gateway"}))

        bus.publish(_prompt())
        await controller.wait_idle()

        assert [error.message for error in outbox.of_type(ErrorMessage)] == ["Bad Gateway"]

    @pytest.mark.asyncio
    async def test_unexpected_error_reports_status_zero(
        self,
        bus: EventBus,
        controller: ChatController,
        outbox: Outbox,
        backend: FakeBackend,
        telemetry: RecordingTelemetry,
    ) -> None:
        backend.outcomes.append(RuntimeError("socket closed"))

        bus.publish(_prompt())
        await controller.wait_idle()

        assert [error.message for error in outbox.of_type(ErrorMessage)] == ["socket closed"]
        assert telemetry.find("chat.message_response_error")[0]["status_code"] == 0

    @pytest.mark.asyncio
    async def test_next_prompt_after_failure_starts_fresh_session(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        backend.outcomes.append(BackendServiceError("boom"))

        bus.publish(_prompt())
        await controller.wait_idle()
        bus.publish(_prompt(message="try again"))
        await controller.wait_idle()

        assert backend.calls[1]["conversation_id"] is None
        assert backend.calls[1]["history"] == []
        assert len(outbox.of_type(AIResponseMessage)) == 1


# ---------------------------------------------------------------------------
# Cancellation and tab lifecycle
# ---------------------------------------------------------------------------


class TestCancellation:
    @pytest.mark.asyncio
    async def test_stop_cancels_without_error_or_session_reset(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        backend.gate = asyncio.Event()

        bus.publish(_prompt())
        await backend.started.wait()
        bus.publish(StopResponseMessage(tab_id="tab-1"))
        await controller.wait_idle()

        assert outbox.of_type(ErrorMessage) == []
        assert outbox.of_type(AIResponseMessage) == []
        session = controller.sessions.get("tab-1")
        assert session is not None
        assert session.token is not None and session.token.is_cancelled

    @pytest.mark.asyncio
    async def test_request_after_stop_uses_fresh_token(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        backend.gate = asyncio.Event()
        bus.publish(_prompt())
        await backend.started.wait()
        bus.publish(StopResponseMessage(tab_id="tab-1"))
        await controller.wait_idle()

        backend.gate = None
        bus.publish(_prompt(message="Explain it again"))
        await controller.wait_idle()

        first_token = backend.calls[0]["token"]
        second_token = backend.calls[1]["token"]
        assert first_token.is_cancelled
        assert not second_token.is_cancelled
        assert second_token.generation == first_token.generation + 1
        assert len(outbox.of_type(AIResponseMessage)) == 1

    @pytest.mark.asyncio
    async def test_tab_close_removes_events_and_session_then_stop_is_noop(
        self, bus: EventBus, controller: ChatController, outbox: Outbox
    ) -> None:
        bus.publish(_prompt())
        await controller.wait_idle()

        bus.publish(TabClosedMessage(tab_id="tab-1"))
        await controller.wait_idle()
        assert "tab-1" not in controller.sessions
        assert controller.triggers.events_for_tab("tab-1") == []

        bus.publish(StopResponseMessage(tab_id="tab-1"))
        await controller.wait_idle()
        assert outbox.of_type(ErrorMessage) == []

    @pytest.mark.asyncio
    async def test_response_for_closed_tab_is_discarded(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        backend.gate = asyncio.Event()
        bus.publish(_prompt())
        await backend.started.wait()

        bus.publish(TabClosedMessage(tab_id="tab-1"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        backend.gate.set()
        await controller.wait_idle()

        assert outbox.messages == []

    @pytest.mark.asyncio
    async def test_aclose_cancels_pending_waits(
        self, bus: EventBus, controller: ChatController, outbox: Outbox
    ) -> None:
        bus.publish(EditorContextCommand(type=EditorContextCommandType.FIX))

        assert await controller.wait_idle(timeout=0.05) is False
        await controller.aclose()
        await asyncio.sleep(0)

        assert controller.pending_tasks == 0
        assert bus.handler_count(PromptMessage) == 0
        assert outbox.of_type(AIResponseMessage) == []


# ---------------------------------------------------------------------------
# Editor-initiated flows
# ---------------------------------------------------------------------------


class TestContextMenu:
    @pytest.mark.asyncio
    async def test_command_echoes_code_and_leaves_trigger_unbound(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, sleeper: ManualSleep
    ) -> None:
        sleeper.on_sleep = lambda calls: controller.triggers.remove(
            outbox.of_type(EditorContextCommandEcho)[0].trigger_id
        )

        bus.publish(EditorContextCommand(type=EditorContextCommandType.REFACTOR))
        await controller.wait_idle()

        echo = outbox.of_type(EditorContextCommandEcho)[0]
        assert echo.command_type is EditorContextCommandType.REFACTOR
        assert echo.code == "total = add(a, b)"

    @pytest.mark.asyncio
    async def test_send_to_prompt_without_selection_does_nothing(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, extractor: StubContextExtractor
    ) -> None:
        extractor.selected = False

        bus.publish(EditorContextCommand(type=EditorContextCommandType.SEND_TO_PROMPT))
        await controller.wait_idle()

        assert outbox.messages == []
        assert len(controller.triggers) == 0
        assert extractor.kinds == []

    @pytest.mark.asyncio
    async def test_send_to_prompt_echoes_without_request(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        bus.publish(EditorContextCommand(type=EditorContextCommandType.SEND_TO_PROMPT))
        await controller.wait_idle()

        echoes = outbox.of_type(EditorContextCommandEcho)
        assert len(echoes) == 1
        assert echoes[0].code == "total = add(a, b)"
        assert backend.calls == []
        assert len(controller.triggers) == 0

    @pytest.mark.asyncio
    async def test_send_to_prompt_tab_still_has_empty_thread(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend
    ) -> None:
        for _ in range(3):
            bus.publish(EditorContextCommand(type=EditorContextCommandType.SEND_TO_PROMPT))
        await controller.wait_idle()
        echo = outbox.of_type(EditorContextCommandEcho)[0]

        bus.publish(TriggerTabIDReceived(trigger_id=echo.trigger_id, tab_id="tab-9"))
        bus.publish(_prompt("tab-9", "And then?", prompt_command="follow-up-was-clicked"))
        await controller.wait_idle()

        assert [error.message for error in outbox.of_type(ErrorMessage)] == [EMPTY_THREAD_MESSAGE.upper()]
        assert backend.calls == []
        assert len(controller.triggers) == 0

    @pytest.mark.asyncio
    async def test_unsupported_selection_reports_error_without_tab(
        self, bus: EventBus, controller: ChatController, outbox: Outbox, extractor: StubContextExtractor
    ) -> None:
        extractor.context = make_context(None, file_path="notes.txt", language="plaintext")

        bus.publish(EditorContextCommand(type=EditorContextCommandType.EXPLAIN))
        await controller.wait_idle()

        errors = outbox.of_type(ErrorMessage)
        assert len(errors) == 1
        assert errors[0].message == UNSUPPORTED_CONTEXT_MESSAGE.upper()
        assert errors[0].tab_id is None
        assert len(controller.triggers) == 0


@pytest.mark.asyncio
async def test_onboarding_interaction_echoes_prompt_and_answers_after_binding(
    bus: EventBus, controller: ChatController, outbox: Outbox, backend: FakeBackend, sleeper: ManualSleep
) -> None:
    def bind(calls: int) -> None:
        if calls == 1:
            echo = outbox.of_type(OnboardingInteractionEcho)[0]
            controller.triggers.rebind(echo.trigger_id, "tab-9")

    sleeper.on_sleep = bind

    bus.publish(OnboardingPageInteraction(type="onboarding-help-cwc-button-clicked"))
    await controller.wait_idle()

    echo = outbox.of_type(OnboardingInteractionEcho)[0]
    assert echo.message == "What can you help me with?"
    answers = outbox.of_type(AIResponseMessage)
    assert [(answer.tab_id, answer.trigger_id) for answer in answers] == [("tab-9", echo.trigger_id)]
    assert backend.calls[0]["request"].user_intent is None


# ---------------------------------------------------------------------------
# Interactions and telemetry
# ---------------------------------------------------------------------------


class TestInteractions:
    @pytest.mark.asyncio
    async def test_insert_code_writes_to_editor_and_records_offsets(
        self,
        bus: EventBus,
        controller: ChatController,
        content: RecordingContentController,
        telemetry: RecordingTelemetry,
    ) -> None:
        content.result = InsertionRange(start=4, end=12, file_path="src/calc.py")

        bus.publish(InsertCodeAtCursorPosition(tab_id="tab-1", message_id="msg-1", code="print(x)"))
        await controller.wait_idle()

        assert content.inserted == ["print(x)"]
        insertion = telemetry.find("chat.code_insertion")[0]
        assert (insertion["start"], insertion["end"]) == (4, 12)
        assert insertion["file_path"] == "src/calc.py"

    @pytest.mark.asyncio
    async def test_link_click_opens_link(
        self,
        bus: EventBus,
        controller: ChatController,
        opened_links: list[str],
        telemetry: RecordingTelemetry,
    ) -> None:
        bus.publish(SourceLinkClickMessage(tab_id="tab-1", message_id="msg-1", link="https://example.com/a"))
        bus.publish(ResponseBodyLinkClickMessage(tab_id="tab-1", message_id="msg-1", link="https://example.com/b"))
        await controller.wait_idle()

        assert sorted(opened_links) == ["https://example.com/a", "https://example.com/b"]
        interactions = {props["interaction"] for props in telemetry.find("chat.interact_with_message")}
        assert interactions == {"click_link", "click_body_link"}

    @pytest.mark.asyncio
    async def test_tab_and_focus_events_are_recorded(
        self, bus: EventBus, controller: ChatController, telemetry: RecordingTelemetry
    ) -> None:
        bus.publish(TabCreatedMessage(tab_id="tab-1"))
        bus.publish(TabChangedMessage(tab_id="tab-2", prev_tab_id="tab-1"))
        bus.publish(UIFocusMessage(type="focus"))
        bus.publish(UIFocusMessage(type="blur"))
        bus.publish(ChatItemVotedMessage(tab_id="tab-1", message_id="msg-1", vote="upvote"))
        bus.publish(ChatItemFeedbackMessage(tab_id="tab-1", message_id="msg-1", selected_option="wrong"))
        bus.publish(CopyCodeToClipboard(tab_id="tab-1", message_id="msg-1", code="x = 1"))
        await controller.wait_idle()

        names = set(telemetry.names())
        assert {
            "chat.open",
            "chat.exit_focus_conversation",
            "chat.enter_focus_conversation",
            "chat.enter_focus",
            "chat.exit_focus",
            "chat.feedback",
            "chat.interact_with_message",
        } <= names
        interactions = {props["interaction"] for props in telemetry.find("chat.interact_with_message")}
        assert interactions == {"upvote", "copy_snippet"}

    @pytest.mark.asyncio
    async def test_successful_answer_records_conversation_start_once(
        self, bus: EventBus, controller: ChatController, telemetry: RecordingTelemetry
    ) -> None:
        bus.publish(_prompt())
        await controller.wait_idle()
        bus.publish(_prompt(message="and now?"))
        await controller.wait_idle()

        assert len(telemetry.find("chat.start_conversation")) == 1
        assert len(telemetry.find("chat.add_message")) == 2

    @pytest.mark.asyncio
    async def test_cleared_and_closed_tabs_start_new_conversations(
        self, bus: EventBus, controller: ChatController, telemetry: RecordingTelemetry
    ) -> None:
        bus.publish(_prompt())
        await controller.wait_idle()
        bus.publish(_prompt(message="/clear", prompt_command="clear"))
        await controller.wait_idle()
        bus.publish(_prompt(message="fresh start"))
        await controller.wait_idle()
        bus.publish(TabClosedMessage(tab_id="tab-1"))
        await controller.wait_idle()
        bus.publish(_prompt(message="reopened"))
        await controller.wait_idle()

        started = telemetry.find("chat.start_conversation")
        assert [props["conversation_id"] for props in started] == ["conv-1", "conv-1", "conv-1"]
