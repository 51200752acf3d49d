"""Per-tab chat session registry."""

from __future__ import annotations

import logging

from .session import AssistantBackend, ChatSession

LOGGER = logging.getLogger(__name__)


class SessionStore:
    """Maps tab ids to their :class:`ChatSession`.

    Deleting a session abandons any token it holds without cancelling it;
    a late response is discarded by the controller instead.
    """

    def __init__(self, backend: AssistantBackend) -> None:
        self._backend = backend
        self._sessions: dict[str, ChatSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, tab_id: object) -> bool:
        return tab_id in self._sessions

    def get(self, tab_id: str) -> ChatSession | None:
        return self._sessions.get(tab_id)

    def get_or_create(self, tab_id: str) -> ChatSession:
        session = self._sessions.get(tab_id)
        if session is None:
            session = ChatSession(tab_id, self._backend)
            self._sessions[tab_id] = session
            LOGGER.debug("SessionStore.get_or_create: new session for tab=%s", tab_id)
        return session

    def delete(self, tab_id: str) -> bool:
        session = self._sessions.pop(tab_id, None)
        if session is None:
            return False
        LOGGER.debug(
            "SessionStore.delete: tab=%s conversation=%s",
            tab_id,
            session.session_identifier,
        )
        return True


__all__ = ["SessionStore"]
