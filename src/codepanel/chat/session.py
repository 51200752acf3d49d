"""Per-tab conversation session and its cancellation token."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Awaitable, Mapping, Protocol, Sequence, TypeVar

from .errors import RequestCancelled
from .model import AssistantResponse, ChatRequest

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal for a single outbound request.

    ``generation`` identifies the request within its session. Cancelling a
    token twice, or after its request finished, does nothing.
    """

    __slots__ = ("generation", "_cancelled", "_event")

    def __init__(self, generation: int = 0) -> None:
        self.generation = generation
        self._cancelled = False
        self._event: asyncio.Event | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelled(self.generation)

    def __repr__(self) -> str:
        return f"CancellationToken(generation={self.generation}, cancelled={self._cancelled})"


async def run_cancellable(operation: Awaitable[T], token: CancellationToken) -> T:
    """Await ``operation`` unless ``token`` fires first.

    When the token wins, the operation is cancelled and
    :class:`RequestCancelled` is raised instead of its result.
    """

    if token.is_cancelled:
        if inspect.iscoroutine(operation):
            operation.close()
        raise RequestCancelled(token.generation)
    work = asyncio.ensure_future(operation)
    watcher = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        watcher.cancel()

    if work.done():
        return work.result()

    work.cancel()
    with contextlib.suppress(asyncio.CancelledError, Exception):
        await work
    raise RequestCancelled(token.generation)


class AssistantBackend(Protocol):
    """Conversational service used by :class:`ChatSession`."""

    async def send(
        self,
        request: ChatRequest,
        token: CancellationToken,
        *,
        conversation_id: str | None = None,
        history: Sequence[Mapping[str, str]] = (),
    ) -> AssistantResponse:
        ...


class ChatSession:
    """One cancellable conversation bound to a UI tab.

    The session keeps the backend conversation id, the turns exchanged so
    far and the token of the request currently in flight.
    """

    def __init__(self, tab_id: str, backend: AssistantBackend) -> None:
        self.tab_id = tab_id
        self._backend = backend
        self.session_identifier: str | None = None
        self._history: list[dict[str, str]] = []
        self._generation = 0
        self._token: CancellationToken | None = None

    @property
    def token(self) -> CancellationToken | None:
        return self._token

    @property
    def history(self) -> list[dict[str, str]]:
        return list(self._history)

    def new_cancellation_token(self) -> CancellationToken:
        """Arm a fresh token; call once per request, before sending it."""
        self._generation += 1
        self._token = CancellationToken(self._generation)
        return self._token

    def cancel(self) -> None:
        token = self._token
        if token is None:
            LOGGER.debug("ChatSession.cancel: tab=%s has no request in flight", self.tab_id)
            return
        LOGGER.debug("ChatSession.cancel: tab=%s generation=%d", self.tab_id, token.generation)
        token.cancel()

    async def send(self, request: ChatRequest) -> AssistantResponse:
        """Send ``request`` with the active token and record the exchange.

        Raises:
            RequestCancelled: the active token was cancelled.
        """
        token = self._token or self.new_cancellation_token()
        response = await run_cancellable(
            self._backend.send(
                request,
                token,
                conversation_id=self.session_identifier,
                history=tuple(self._history),
            ),
            token,
        )
        if response.conversation_id:
            self.session_identifier = response.conversation_id
        self._history.append({"role": "user", "content": request.message})
        self._history.append({"role": "assistant", "content": response.text})
        return response

    def describe(self) -> Mapping[str, Any]:
        return {
            "tab_id": self.tab_id,
            "conversation_id": self.session_identifier,
            "turns": len(self._history) // 2,
            "generation": self._generation,
        }


__all__ = [
    "AssistantBackend",
    "CancellationToken",
    "ChatSession",
    "run_cancellable",
]
