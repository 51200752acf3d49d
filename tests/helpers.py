"""Shared test helpers and stub collaborators for the chat controller.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Callable, Mapping, Sequence

from codepanel.chat.messages import OUTBOUND_MESSAGE_TYPES, OutboundMessage
from codepanel.chat.model import (
    ActiveFileContext,
    AssistantResponse,
    ChatRequest,
    CodeQuery,
    EditorContext,
    FocusAreaContext,
    TextSpan,
    TriggerContextKind,
)
from codepanel.chat.session import CancellationToken
from codepanel.editor.content import InsertionRange
from codepanel.events import EventBus


def make_context(
    code: str | None = "total = add(a, b)",
    *,
    file_path: str = "src/calc.py",
    language: str = "python",
) -> EditorContext:
    """Build an editor context whose selection is the whole ``code`` block."""

    focus = FocusAreaContext(
        code_block=code,
        extended_code_block=code,
        selection_inside_extended_code_block=TextSpan(0, len(code or "")),
        names=CodeQuery(simple_names=("total", "add")),
    )
    return EditorContext(
        active_file_context=ActiveFileContext(file_path=file_path, file_language=language),
        focus_area_context=focus,
    )


class FakeBackend:
    """Assistant backend that replays scripted outcomes.

    Each outcome is either an :class:`AssistantResponse` or an exception
    instance to raise. When ``gate`` is set, every call blocks on it first.
    """

    def __init__(self, outcomes: Sequence[AssistantResponse | BaseException] = ()) -> None:
        self.outcomes: deque[AssistantResponse | BaseException] = deque(outcomes)
        self.calls: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def send(
        self,
        request: ChatRequest,
        token: CancellationToken,
        *,
        conversation_id: str | None = None,
        history: Sequence[Mapping[str, str]] = (),
    ) -> AssistantResponse:
        self.calls.append(
            {
                "request": request,
                "token": token,
                "conversation_id": conversation_id,
                "history": list(history),
            }
        )
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        outcome: AssistantResponse | BaseException
        if self.outcomes:
            outcome = self.outcomes.popleft()
        else:
            outcome = AssistantResponse(
                text=f"answer {len(self.calls)}",
                conversation_id=conversation_id or "conv-1",
                message_id=f"msg-{len(self.calls)}",
                request_id=f"req-{len(self.calls)}",
                http_status=200,
            )
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class StubContextExtractor:
    def __init__(
        self,
        context: EditorContext | None = None,
        *,
        selected: bool = True,
        error: BaseException | None = None,
    ) -> None:
        self.context = context
        self.selected = selected
        self.error = error
        self.kinds: list[TriggerContextKind] = []

    async def extract_context_for_trigger(self, kind: TriggerContextKind) -> EditorContext | None:
        self.kinds.append(kind)
        if self.error is not None:
            raise self.error
        return self.context

    def is_code_block_selected(self) -> bool:
        return self.selected


class RecordingContentController:
    def __init__(self, result: InsertionRange | None = None) -> None:
        self.result = result
        self.inserted: list[str] = []

    def insert_text_at_cursor(self, text: str) -> InsertionRange | None:
        self.inserted.append(text)
        return self.result


class StubCredentials:
    def __init__(self, state: str | None = None) -> None:
        self.state = state
        self.calls = 0

    async def get_credential_state(self) -> str | None:
        self.calls += 1
        return self.state


class ManualSleep:
    """Injectable sleep that never waits on the clock.

    ``on_sleep`` is called with the running call count before yielding to
    the loop, which lets a test mutate state between tab-binding checks.
    """

    def __init__(self, on_sleep: Callable[[int], None] | None = None) -> None:
        self.calls = 0
        self.delays: list[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, delay: float) -> None:
        self.calls += 1
        self.delays.append(delay)
        if self.on_sleep is not None:
            self.on_sleep(self.calls)
        await asyncio.sleep(0)


class Outbox:
    """Collects every outbound delivery published on ``bus``."""

    def __init__(self, bus: EventBus) -> None:
        self.messages: list[OutboundMessage] = []
        for message_type in OUTBOUND_MESSAGE_TYPES:
            bus.subscribe(message_type, self._record)

    def _record(self, message: OutboundMessage) -> None:
        self.messages.append(message)

    def of_type(self, message_type: type[OutboundMessage]) -> list[Any]:
        return [message for message in self.messages if isinstance(message, message_type)]


class RecordingTelemetry:
    """Telemetry client stand-in that keeps every tracked event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def track_event(self, name: str, **props: Any) -> None:
        self.events.append((name, props))

    def flush(self) -> None:
        return None

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def find(self, name: str) -> list[dict[str, Any]]:
        return [props for event_name, props in self.events if event_name == name]
