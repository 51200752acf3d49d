"""Chat orchestration: trigger correlation, per-tab sessions and error delivery."""

from .controller import ChatController
from .errors import normalize_error
from .session import CancellationToken, ChatSession
from .session_store import SessionStore
from .trigger_store import TriggerEventStore

__all__ = [
    "CancellationToken",
    "ChatController",
    "ChatSession",
    "SessionStore",
    "TriggerEventStore",
    "normalize_error",
]
