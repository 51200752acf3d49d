"""In-memory store of trigger events keyed by correlation id."""

from __future__ import annotations

import logging

from .errors import (
    DuplicateTriggerEventError,
    TriggerEventAlreadyBoundError,
    TriggerEventNotFoundError,
)
from .model import TriggerEvent

LOGGER = logging.getLogger(__name__)


class TriggerEventStore:
    """Process-wide mapping from trigger id to :class:`TriggerEvent`.

    Events are kept in insertion order, which is also the order in which
    their UI events were processed. :meth:`last_for_tab` relies on that
    order rather than on when a tab id was bound.
    """

    def __init__(self) -> None:
        self._events: dict[str, TriggerEvent] = {}

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, trigger_id: object) -> bool:
        return trigger_id in self._events

    def add(self, event: TriggerEvent) -> None:
        if event.id in self._events:
            raise DuplicateTriggerEventError(event.id)
        self._events[event.id] = event
        LOGGER.debug(
            "TriggerEventStore.add: id=%s type=%s tab=%s",
            event.id,
            event.type.value,
            event.tab_id,
        )

    def get(self, trigger_id: str) -> TriggerEvent | None:
        return self._events.get(trigger_id)

    def last_for_tab(self, tab_id: str) -> TriggerEvent | None:
        """Return the most recently added event bound to ``tab_id``."""
        for event in reversed(self._events.values()):
            if event.tab_id == tab_id:
                return event
        return None

    def rebind(self, trigger_id: str, tab_id: str) -> TriggerEvent:
        """Attach ``tab_id`` to an event created without one.

        Raises:
            TriggerEventNotFoundError: ``trigger_id`` is unknown.
            TriggerEventAlreadyBoundError: the event already belongs to a
                different tab.
        """
        event = self._events.get(trigger_id)
        if event is None:
            raise TriggerEventNotFoundError(trigger_id)
        if event.tab_id is not None:
            if event.tab_id == tab_id:
                LOGGER.debug("TriggerEventStore.rebind: %s already bound to %s", trigger_id, tab_id)
                return event
            raise TriggerEventAlreadyBoundError(trigger_id, event.tab_id, tab_id)
        event.tab_id = tab_id
        LOGGER.debug("TriggerEventStore.rebind: id=%s tab=%s", trigger_id, tab_id)
        return event

    def remove(self, trigger_id: str) -> TriggerEvent | None:
        """Drop a single event, bound or not; unknown ids are ignored."""
        event = self._events.pop(trigger_id, None)
        if event is not None:
            LOGGER.debug("TriggerEventStore.remove: id=%s tab=%s", trigger_id, event.tab_id)
        return event

    def remove_all_for_tab(self, tab_id: str) -> int:
        doomed = [key for key, event in self._events.items() if event.tab_id == tab_id]
        for key in doomed:
            del self._events[key]
        if doomed:
            LOGGER.debug("TriggerEventStore.remove_all_for_tab: tab=%s removed=%d", tab_id, len(doomed))
        return len(doomed)

    def events_for_tab(self, tab_id: str) -> list[TriggerEvent]:
        return [event for event in self._events.values() if event.tab_id == tab_id]


__all__ = ["TriggerEventStore"]
