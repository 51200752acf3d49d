"""Translate trigger payloads into backend requests."""

from __future__ import annotations

from .model import ChatRequest, EditorState, TextSpan, TriggerPayload

DEFAULT_MAX_FILE_TEXT_CHARS = 40_000


def trigger_payload_to_chat_request(
    payload: TriggerPayload,
    *,
    max_file_text_chars: int = DEFAULT_MAX_FILE_TEXT_CHARS,
) -> ChatRequest:
    """Build the :class:`ChatRequest` for ``payload``.

    File text longer than ``max_file_text_chars`` is clipped to a window
    centred on the selection, with the selection shifted to match.
    """

    editor_state = None
    if payload.file_text is not None:
        text, selection = _clip_text(payload.file_text, payload.code_selection, max_file_text_chars)
        symbols: tuple[str, ...] = ()
        if payload.code_query is not None:
            symbols = tuple(
                dict.fromkeys(payload.code_query.fully_qualified_names + payload.code_query.simple_names)
            )
        editor_state = EditorState(
            file_path=payload.file_path,
            language=payload.file_language,
            text=text,
            selection=selection,
            symbols=symbols,
        )
    return ChatRequest(
        message=payload.message,
        trigger_type=payload.trigger,
        user_intent=payload.user_intent,
        editor_state=editor_state,
    )


def _clip_text(text: str, selection: TextSpan | None, limit: int) -> tuple[str, TextSpan | None]:
    limit = max(1, int(limit))
    if len(text) <= limit:
        return text, selection

    if selection is None:
        return text[:limit], None

    centre = (selection.start + selection.end) // 2
    start = max(0, min(centre - limit // 2, len(text) - limit))
    end = start + limit
    clipped_start = min(max(selection.start - start, 0), limit)
    clipped_end = min(max(selection.end - start, clipped_start), limit)
    return text[start:end], TextSpan(clipped_start, clipped_end)


__all__ = ["DEFAULT_MAX_FILE_TEXT_CHARS", "trigger_payload_to_chat_request"]
