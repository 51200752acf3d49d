"""Async assistant client built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, cast

import httpx
from openai import (
    APIConnectionError,
    APIResponseValidationError,
    APIStatusError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..chat.errors import BackendServiceError, MalformedResponseError
from ..chat.model import AssistantResponse, ChatRequest, EditorState
from ..chat.session import CancellationToken, run_cancellable

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a coding assistant embedded in a code editor. Answer questions about the user's code, "
    "using the editor context attached to each message when it is relevant. Format code in fenced blocks."
)
_HTTP_OK = 200


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the assistant client."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    temperature: float | None = 0.2
    system_prompt: str | None = None
    debug_logging: bool = False


class AssistantClient:
    """Chat-completions backend for :class:`~codepanel.chat.session.ChatSession`.

    Each call sends the session history plus one user turn that carries the
    editor context. Transient transport failures are retried with
    exponential backoff; everything else is mapped onto the chat error
    classes before it leaves the client.
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def send(
        self,
        request: ChatRequest,
        token: CancellationToken,
        *,
        conversation_id: str | None = None,
        history: Sequence[Mapping[str, str]] = (),
    ) -> AssistantResponse:
        """Send ``request`` and return the completed answer.

        Args:
            request: The backend request built from a trigger payload.
            token: Cancellation token of the session's current request.
            conversation_id: Identifier returned by an earlier exchange, if any.
            history: Previous user/assistant turns of the conversation.

        Raises:
            RequestCancelled: ``token`` fired before the answer arrived.
            BackendServiceError: The service rejected the request or was unreachable.
            MalformedResponseError: The service answered with an unusable payload.
        """

        payload = self._build_chat_payload(self.build_messages(request, history))
        LOGGER.debug(
            "Requesting chat completion via %s with %s message(s); conversation=%s",
            self._settings.model,
            len(payload["messages"]),
            conversation_id,
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        completion = await run_cancellable(self._create_completion(payload, token), token)
        return self._to_response(completion, conversation_id)

    def build_messages(
        self,
        request: ChatRequest,
        history: Sequence[Mapping[str, str]] = (),
    ) -> List[ChatCompletionMessageParam]:
        system_prompt = self._settings.system_prompt or DEFAULT_SYSTEM_PROMPT
        messages: List[ChatCompletionMessageParam] = [{"role": "system", "content": system_prompt}]
        for turn in history:
            role = turn.get("role")
            content = turn.get("content")
            if role in ("user", "assistant") and content:
                messages.append(cast(ChatCompletionMessageParam, {"role": role, "content": content}))
        messages.append({"role": "user", "content": _render_user_turn(request)})
        return messages

    async def _create_completion(self, payload: Dict[str, Any], token: CancellationToken) -> Any:
        try:
            async for attempt in self._retrying():
                with attempt:
                    token.raise_if_cancelled()
                    return await self._client.chat.completions.create(**payload)
        except APIResponseValidationError as exc:
            raise MalformedResponseError(
                {"reason": exc.response.reason_phrase, "status_code": exc.status_code},
                detail=str(exc),
            ) from exc
        except APIStatusError as exc:
            raise BackendServiceError(
                _status_message(exc),
                request_id=exc.request_id,
                status_code=exc.status_code,
            ) from exc
        except (APIConnectionError, httpx.TimeoutException) as exc:
            raise BackendServiceError(str(exc) or "Unable to reach the assistant service") from exc
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(None, detail=str(exc)) from exc
        raise BackendServiceError("Assistant service request was not attempted")  # pragma: no cover

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
            max_retries=0,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIConnectionError,
                    RateLimitError,
                    InternalServerError,
                    httpx.TimeoutException,
                )
            ),
        )

    def _build_chat_payload(self, messages: Sequence[ChatCompletionMessageParam]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": list(messages),
        }
        if self._settings.temperature is not None:
            payload["temperature"] = self._settings.temperature
        return payload

    def _to_response(self, completion: Any, conversation_id: str | None) -> AssistantResponse:
        choices = getattr(completion, "choices", None) or []
        if not choices:
            raise MalformedResponseError(None, detail="Chat completion contained no choices")
        message = getattr(choices[0], "message", None)
        text = getattr(message, "content", None)
        if text is None:
            raise MalformedResponseError(None, detail="Chat completion contained no message content")

        metadata: Dict[str, Any] = {"finish_reason": getattr(choices[0], "finish_reason", None)}
        usage = getattr(completion, "usage", None)
        if usage is not None:
            metadata["prompt_tokens"] = getattr(usage, "prompt_tokens", None)
            metadata["completion_tokens"] = getattr(usage, "completion_tokens", None)

        response = AssistantResponse(
            text=str(text),
            conversation_id=conversation_id or f"conv-{uuid.uuid4().hex[:12]}",
            message_id=getattr(completion, "id", None),
            request_id=getattr(completion, "_request_id", None),
            http_status=_HTTP_OK,
            model=getattr(completion, "model", None) or self._settings.model,
            metadata=metadata,
        )
        LOGGER.debug(
            "Chat completion received: conversation=%s message=%s request_id=%s length=%d",
            response.conversation_id,
            response.message_id,
            response.request_id,
            len(response.text),
        )
        return response

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Chat payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Chat payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        try:
            result = close()
        except Exception as exc:  # pragma: no cover - defensive guard
            LOGGER.debug("Assistant client close failed to start: %s", exc)
            return
        if inspect.isawaitable(result):
            await result


def _status_message(exc: APIStatusError) -> str:
    body = exc.body
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return exc.message or f"Assistant service returned HTTP {exc.status_code}"


def _render_user_turn(request: ChatRequest) -> str:
    parts = [request.message]
    if request.user_intent is not None:
        parts.append(f"Intent: {request.user_intent.value}")
    state = request.editor_state
    if state is not None and state.text:
        parts.append(_render_editor_state(state))
    return "\n\n".join(part for part in parts if part)


def _render_editor_state(state: EditorState) -> str:
    lines: List[str] = []
    if state.file_path:
        lines.append(f"File: {state.file_path}")
    selection = state.selection
    if selection is not None and not selection.is_empty:
        lines.append("Selected code:")
        lines.append(_fence(state.text[selection.start : selection.end], state.language))
        lines.append("Surrounding code:")
    else:
        lines.append("Code:")
    lines.append(_fence(state.text, state.language))
    if state.symbols:
        lines.append("Referenced names: " + ", ".join(state.symbols))
    return "\n".join(lines)


def _fence(code: str, language: str | None) -> str:
    return f"```{language or ''}\n{code}\n```"


__all__ = ["AssistantClient", "ClientSettings", "DEFAULT_SYSTEM_PROMPT"]
