"""Unit tests for :mod:`codepanel.events`."""

from __future__ import annotations

import gc
import logging
from dataclasses import dataclass

import pytest

from codepanel.chat.messages import ErrorMessage, TabClosedMessage, UIFocusMessage
from codepanel.events import Event, EventBus, event_payload


@dataclass(slots=True)
class SampleEvent(Event):
    message: str
    value: int = 0


class _Subscriber:
    def __init__(self) -> None:
        self.received: list[SampleEvent] = []

    def on_event(self, event: SampleEvent) -> None:
        self.received.append(event)


class TestEventBus:
    def test_publish_reaches_handlers_in_order(self) -> None:
        bus: EventBus[Event] = EventBus()
        calls: list[str] = []

        bus.subscribe(SampleEvent, lambda event: calls.append(f"first:{event.message}"))
        bus.subscribe(SampleEvent, lambda event: calls.append(f"second:{event.message}"))
        bus.publish(SampleEvent(message="hi"))

        assert calls == ["first:hi", "second:hi"]

    def test_publish_only_matches_exact_type(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[Event] = []
        bus.subscribe(TabClosedMessage, received.append)

        bus.publish(SampleEvent(message="ignored"))

        assert received == []

    def test_failing_handler_does_not_block_others(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[SampleEvent] = []

        def broken(event: SampleEvent) -> None:
            raise RuntimeError("boom")

        bus.subscribe(SampleEvent, broken)
        bus.subscribe(SampleEvent, received.append)
        bus.publish(SampleEvent(message="still delivered"))

        assert [event.message for event in received] == ["still delivered"]

    def test_unsubscribe_removes_bound_method(self) -> None:
        bus: EventBus[Event] = EventBus()
        subscriber = _Subscriber()
        bus.subscribe(SampleEvent, subscriber.on_event)

        bus.unsubscribe(SampleEvent, subscriber.on_event)
        bus.publish(SampleEvent(message="x"))

        assert subscriber.received == []
        assert bus.handler_count(SampleEvent) == 0

    def test_dead_bound_method_is_pruned(self) -> None:
        bus: EventBus[Event] = EventBus()
        subscriber = _Subscriber()
        bus.subscribe(SampleEvent, subscriber.on_event)

        del subscriber
        gc.collect()
        bus.publish(SampleEvent(message="x"))

        assert bus.handler_count(SampleEvent) == 0

    def test_clear_drops_everything(self) -> None:
        bus: EventBus[Event] = EventBus()
        bus.subscribe(SampleEvent, lambda event: None)
        bus.subscribe(TabClosedMessage, lambda event: None)

        bus.clear()

        assert bus.handler_count() == 0


def test_quiet_events_skip_publish_logging(caplog: pytest.LogCaptureFixture) -> None:
    bus: EventBus[Event] = EventBus()
    received: list[Event] = []
    bus.subscribe(UIFocusMessage, received.append)
    bus.subscribe(SampleEvent, received.append)

    with caplog.at_level(logging.DEBUG, logger="codepanel.events"):
        bus.publish(UIFocusMessage(type="focus"))
        bus.publish(SampleEvent(message="loud"))

    assert len(received) == 2
    publishing = [record.getMessage() for record in caplog.records if record.getMessage().startswith("Publishing")]
    assert publishing == ["Publishing SampleEvent to 1 handler(s)"]


def test_event_payload_and_wire_dict() -> None:
    message = ErrorMessage(message="Failed to get response", tab_id="tab-1", request_id=None)

    assert event_payload(message) == {
        "message": "Failed to get response",
        "tab_id": "tab-1",
        "request_id": None,
    }
    assert message.to_dict()["command"] == "error-message"
