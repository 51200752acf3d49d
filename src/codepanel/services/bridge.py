"""JSON-lines bridge between the host UI process and the event bus.

Each input line is one JSON object with a ``command`` key. UI commands are
decoded into :mod:`codepanel.chat.messages` dataclasses and published on the
bus; ``editor-state`` lines refresh the headless editor state instead.
Outbound deliveries are written back as one JSON object per line.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sys
from dataclasses import MISSING, fields
from typing import Any, Awaitable, Callable, Dict, Mapping, TextIO

from ..chat.messages import (
    INBOUND_MESSAGE_TYPES,
    OUTBOUND_MESSAGE_TYPES,
    EditorContextCommand,
    InboundMessage,
    OutboundMessage,
    PromptMessage,
)
from ..chat.model import EditorContextCommandType, UserIntent
from ..editor.state import EditorSnapshot, EditorState
from ..events import EventBus

LOGGER = logging.getLogger(__name__)

EDITOR_STATE_COMMAND = "editor-state"
PROMPT_COMMANDS = frozenset(
    {"chat-prompt", "follow-up-was-clicked", "onboarding-page-cwc-button-clicked", "clear"}
)
_INBOUND_BY_COMMAND: Mapping[str, type[InboundMessage]] = {
    message_type.command: message_type
    for message_type in INBOUND_MESSAGE_TYPES
    if message_type is not PromptMessage
}
_KEY_ALIASES: Mapping[str, str] = {"chat_message": "message"}
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z]+)")


class BridgeDecodeError(ValueError):
    """An input line could not be turned into an inbound message."""


def normalize_key(key: str) -> str:
    """Convert ``tabID``/``messageId`` style keys to snake case."""

    snake = _CAMEL_BOUNDARY.sub(lambda match: "_" + match.group(1), key).lower()
    return _KEY_ALIASES.get(snake, snake)


def decode_inbound(payload: Mapping[str, Any]) -> InboundMessage:
    """Build the inbound message described by ``payload``.

    Raises:
        BridgeDecodeError: The command is unknown or a required field is missing.
    """

    command = payload.get("command")
    if not isinstance(command, str) or not command:
        raise BridgeDecodeError("Message is missing a 'command' string")

    data: Dict[str, Any] = {normalize_key(key): value for key, value in payload.items() if key != "command"}
    if command in PROMPT_COMMANDS:
        message_type: type[InboundMessage] = PromptMessage
        data["prompt_command"] = command
    else:
        resolved = _INBOUND_BY_COMMAND.get(command)
        if resolved is None:
            raise BridgeDecodeError(f"Unknown command {command!r}")
        message_type = resolved

    kwargs: Dict[str, Any] = {}
    for item in fields(message_type):
        if item.name in data:
            kwargs[item.name] = data[item.name]
        elif item.default is MISSING and item.default_factory is MISSING:
            raise BridgeDecodeError(f"{command!r} is missing required field {item.name!r}")

    try:
        _coerce_enums(message_type, kwargs)
    except ValueError as exc:
        raise BridgeDecodeError(f"{command!r} has an invalid value: {exc}") from exc
    return message_type(**kwargs)


def encode_outbound(message: OutboundMessage) -> str:
    return json.dumps(message.to_dict(), ensure_ascii=False)


def _coerce_enums(message_type: type[InboundMessage], kwargs: Dict[str, Any]) -> None:
    if message_type is EditorContextCommand and "type" in kwargs:
        kwargs["type"] = EditorContextCommandType(kwargs["type"])
    if message_type is PromptMessage and kwargs.get("user_intent") is not None:
        kwargs["user_intent"] = UserIntent(kwargs["user_intent"])


class StdioBridge:
    """Pumps JSON lines from a reader onto the bus and deliveries back out.

    Args:
        bus: Bus shared with the chat controller.
        editor_state: Headless editor state refreshed by ``editor-state`` lines.
        writer: Stream receiving outbound JSON lines (stdout by default).
    """

    def __init__(self, bus: EventBus, editor_state: EditorState, *, writer: TextIO | None = None) -> None:
        self._bus = bus
        self._editor_state = editor_state
        self._writer = writer or sys.stdout
        self._decode_failures = 0
        for message_type in OUTBOUND_MESSAGE_TYPES:
            bus.subscribe(message_type, self._on_outbound)

    @property
    def decode_failures(self) -> int:
        return self._decode_failures

    def handle_line(self, line: str) -> None:
        """Decode one input line and route it; malformed lines are logged and skipped."""

        text = line.strip()
        if not text:
            return
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            self._reject(f"invalid JSON: {exc}")
            return
        if not isinstance(payload, Mapping):
            self._reject("expected a JSON object")
            return

        if payload.get("command") == EDITOR_STATE_COMMAND:
            self._update_editor_state(payload)
            return
        try:
            message = decode_inbound(payload)
        except BridgeDecodeError as exc:
            self._reject(str(exc))
            return
        LOGGER.debug("Bridge received %s", type(message).__name__)
        self._bus.publish(message)

    async def run(self, reader: Callable[[], Awaitable[str]] | None = None) -> None:
        """Process lines until ``reader`` returns an empty string (EOF)."""

        read_line = reader or self._read_stdin
        while True:
            line = await read_line()
            if not line:
                LOGGER.info("Bridge input closed")
                return
            self.handle_line(line)
            # Give handler tasks spawned by the publish a chance to start.
            await asyncio.sleep(0)

    def close(self) -> None:
        for message_type in OUTBOUND_MESSAGE_TYPES:
            self._bus.unsubscribe(message_type, self._on_outbound)

    async def _read_stdin(self) -> str:
        return await asyncio.to_thread(sys.stdin.readline)

    def _on_outbound(self, message: OutboundMessage) -> None:
        self._writer.write(encode_outbound(message))
        self._writer.write("\n")
        self._writer.flush()

    def _update_editor_state(self, payload: Mapping[str, Any]) -> None:
        document = payload.get("document", payload)
        if document is None:
            self._editor_state.update(None)
            return
        if not isinstance(document, Mapping):
            self._reject("editor-state document must be an object or null")
            return
        data = {normalize_key(key): value for key, value in document.items() if key != "command"}
        try:
            snapshot = EditorSnapshot.from_mapping(data)
        except (TypeError, ValueError) as exc:
            self._reject(f"invalid editor-state: {exc}")
            return
        self._editor_state.update(snapshot)

    def _reject(self, reason: str) -> None:
        self._decode_failures += 1
        LOGGER.warning("Bridge dropped input line: %s", reason)


__all__ = [
    "BridgeDecodeError",
    "EDITOR_STATE_COMMAND",
    "PROMPT_COMMANDS",
    "StdioBridge",
    "decode_inbound",
    "encode_outbound",
    "normalize_key",
]
