"""Shared pytest fixtures."""

from __future__ import annotations

from typing import cast

import pytest

from codepanel.chat.controller import ChatController
from codepanel.chat.telemetry import TelemetryClient
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


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def outbox(bus: EventBus) -> Outbox:
    return Outbox(bus)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def extractor() -> StubContextExtractor:
    return StubContextExtractor(make_context())


@pytest.fixture
def content() -> RecordingContentController:
    return RecordingContentController()


@pytest.fixture
def credentials() -> StubCredentials:
    return StubCredentials()


@pytest.fixture
def sleeper() -> ManualSleep:
    return ManualSleep()


@pytest.fixture
def telemetry() -> RecordingTelemetry:
    return RecordingTelemetry()


@pytest.fixture
def opened_links() -> list[str]:
    return []


@pytest.fixture
def controller(
    bus: EventBus,
    backend: FakeBackend,
    extractor: StubContextExtractor,
    content: RecordingContentController,
    credentials: StubCredentials,
    sleeper: ManualSleep,
    telemetry: RecordingTelemetry,
    opened_links: list[str],
) -> ChatController:
    return ChatController(
        bus,
        backend,
        context_extractor=extractor,
        content_controller=content,
        auth_provider=credentials,
        telemetry=cast(TelemetryClient, telemetry),
        sleep=sleeper,
        link_opener=opened_links.append,
    )
