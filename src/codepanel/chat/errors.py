"""Error taxonomy for the chat controller and the normalizer that flattens it.

Collaborators raise one of the classes below; :func:`normalize_error` turns
any failure into the ``(message, request_id)`` pair shown in the panel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

LOGGER = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Failed to get response"
EMPTY_THREAD_MESSAGE = "It's impossible to ask follow-ups on empty tabs"
UNSUPPORTED_CONTEXT_MESSAGE = "Sorry, we cannot help with the selected language code snippet"


class ChatError(Exception):
    """Base class for errors raised inside the chat package."""


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------


class TriggerEventError(ChatError):
    """Base class for trigger event store violations."""


class DuplicateTriggerEventError(TriggerEventError, KeyError):
    def __init__(self, trigger_id: str) -> None:
        super().__init__(f"Trigger event {trigger_id!r} already exists")
        self.trigger_id = trigger_id

    def __str__(self) -> str:
        return str(self.args[0])


class TriggerEventNotFoundError(TriggerEventError, KeyError):
    """The correlation id is unknown, usually because its tab was closed."""

    def __init__(self, trigger_id: str) -> None:
        super().__init__(f"Trigger event {trigger_id!r} not found")
        self.trigger_id = trigger_id

    def __str__(self) -> str:
        return str(self.args[0])


class TriggerEventAlreadyBoundError(TriggerEventError):
    """A trigger event was rebound to a second tab."""

    def __init__(self, trigger_id: str, bound_tab_id: str, requested_tab_id: str) -> None:
        super().__init__(
            f"Trigger event {trigger_id!r} is already bound to tab {bound_tab_id!r};"
            f" refusing to rebind to {requested_tab_id!r}"
        )
        self.trigger_id = trigger_id
        self.bound_tab_id = bound_tab_id
        self.requested_tab_id = requested_tab_id


# ---------------------------------------------------------------------------
# User-facing text failures
# ---------------------------------------------------------------------------


class TextFailure(ChatError):
    """A failure whose text is shown to the user as-is (upper-cased)."""

    default_text: str = DEFAULT_ERROR_MESSAGE

    def __init__(self, text: str | None = None) -> None:
        self.text = text or self.default_text
        super().__init__(self.text)


class EmptyThreadError(TextFailure):
    default_text = EMPTY_THREAD_MESSAGE


class UnsupportedContextError(TextFailure):
    default_text = UNSUPPORTED_CONTEXT_MESSAGE


# ---------------------------------------------------------------------------
# Backend failures
# ---------------------------------------------------------------------------


class RequestCancelled(ChatError):
    """The in-flight request was aborted through its cancellation token."""

    def __init__(self, generation: int | None = None) -> None:
        super().__init__("Request cancelled")
        self.generation = generation


class BackendServiceError(ChatError):
    """Structured failure reported by the assistant service."""

    def __init__(
        self,
        message: str,
        *,
        request_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.status_code = status_code


class MalformedResponseError(ChatError):
    """The backend answered with something the client could not parse.

    ``response`` holds whatever was salvaged from the raw HTTP response; a
    ``reason`` entry (the HTTP reason phrase) is surfaced to the user.
    """

    def __init__(self, response: Mapping[str, Any] | None = None, *, detail: str | None = None) -> None:
        super().__init__(detail or "Malformed response from assistant service")
        self.response = response


@dataclass(frozen=True, slots=True)
class ErrorDetails:
    message: str
    request_id: str | None = None


def normalize_error(error: object) -> ErrorDetails:
    """Map any failure value onto the message/request id shown in the panel."""

    if isinstance(error, TextFailure):
        return ErrorDetails(error.text.upper())
    if isinstance(error, MalformedResponseError):
        reason = None
        if isinstance(error.response, Mapping):
            reason = error.response.get("reason")
        return ErrorDetails(str(reason) if reason else DEFAULT_ERROR_MESSAGE)
    if isinstance(error, BackendServiceError):
        return ErrorDetails(error.message or DEFAULT_ERROR_MESSAGE, error.request_id)
    if isinstance(error, BaseException):
        return ErrorDetails(str(error) or DEFAULT_ERROR_MESSAGE)
    if isinstance(error, str):
        return ErrorDetails(error.upper())
    LOGGER.debug("Normalizing unexpected failure value of type %s", type(error).__name__)
    return ErrorDetails(DEFAULT_ERROR_MESSAGE)


def error_status_code(error: object) -> int:
    """Return the backend HTTP status carried by ``error``, or 0."""

    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else 0


__all__ = [
    "BackendServiceError",
    "ChatError",
    "DEFAULT_ERROR_MESSAGE",
    "DuplicateTriggerEventError",
    "EMPTY_THREAD_MESSAGE",
    "EmptyThreadError",
    "ErrorDetails",
    "MalformedResponseError",
    "RequestCancelled",
    "TextFailure",
    "TriggerEventAlreadyBoundError",
    "TriggerEventError",
    "TriggerEventNotFoundError",
    "UNSUPPORTED_CONTEXT_MESSAGE",
    "UnsupportedContextError",
    "error_status_code",
    "normalize_error",
]
