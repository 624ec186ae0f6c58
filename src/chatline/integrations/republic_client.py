"""Republic integration: the concrete remote stream capability."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from functools import partial
from typing import Any

from loguru import logger
from republic import LLM

from chatline.config import Settings
from chatline.conversation.models import Turn
from chatline.errors import TransportError
from chatline.stream import ContentBlock, FinalMessage, StreamListener, TaskStreamHandle


def build_llm(settings: Settings) -> LLM:
    """Build Republic LLM client configured for chatline."""

    return LLM(
        settings.model,
        api_key=settings.resolved_api_key,
        api_base=settings.api_base,
    )


def build_stream_opener(settings: Settings) -> RepublicStreamOpener:
    return RepublicStreamOpener(
        build_llm(settings),
        max_tokens=settings.max_tokens,
        system_prompt=settings.system_prompt,
        timeout_seconds=settings.timeout_seconds,
    )


class RepublicStreamOpener:
    """Opens one streaming completion per request through a Republic LLM."""

    def __init__(
        self,
        llm: Any,
        *,
        max_tokens: int,
        system_prompt: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._llm = llm
        self._max_tokens = max_tokens
        self._system_prompt = (system_prompt or "").strip()
        self._timeout_seconds = timeout_seconds

    def open(self, turns: Sequence[Turn], listener: StreamListener) -> TaskStreamHandle:
        messages = [turn.to_payload() for turn in turns]
        return TaskStreamHandle.start(partial(self._stream, messages), listener)

    async def _stream(self, messages: list[dict[str, str]], handle: TaskStreamHandle) -> None:
        async with asyncio.timeout(self._timeout_seconds):
            stream_kwargs: dict[str, Any] = {
                "messages": messages,
                "max_tokens": self._max_tokens,
            }
            if self._system_prompt:
                stream_kwargs["system_prompt"] = self._system_prompt

            stream = await self._llm.stream_events_async(**stream_kwargs)
            logger.debug("stream.connect messages={}", len(messages))
            handle.emit_connect()
            await self._read_stream(stream, handle)

    async def _read_stream(self, stream: Any, handle: TaskStreamHandle) -> None:
        snapshot = ""
        final_event: dict[str, Any] | None = None
        error_event: dict[str, Any] | None = None
        async for event in stream:
            event_kind = getattr(event, "kind", None)
            event_data = getattr(event, "data", None)
            if not isinstance(event_data, dict):
                continue
            if event_kind == "text":
                delta = event_data.get("delta")
                if isinstance(delta, str) and delta:
                    snapshot += delta
                    handle.emit_text(delta, snapshot)
            elif event_kind == "error":
                error_event = event_data
            elif event_kind == "final":
                final_event = event_data

        stream_error = getattr(stream, "error", None)
        if stream_error is not None:
            raise TransportError(_format_stream_error(stream_error))
        if final_event is None:
            raise TransportError(_format_error_event(error_event) if error_event else "missing final event")
        if final_event.get("ok") is False or error_event is not None:
            raise TransportError(_format_error_event(error_event))
        handle.emit_final(_final_message(final_event))


def _final_message(final_event: dict[str, Any]) -> FinalMessage:
    if final_event.get("tool_calls"):
        return FinalMessage(tuple(ContentBlock("tool_use") for _ in final_event["tool_calls"]))
    text = final_event.get("text")
    if isinstance(text, str):
        return FinalMessage.from_text(text)
    return FinalMessage((ContentBlock("unknown"),))


def _format_stream_error(error: object) -> str:
    kind = getattr(error, "kind", None)
    message = getattr(error, "message", None)
    kind_value = getattr(kind, "value", kind)
    if isinstance(kind_value, str) and isinstance(message, str):
        return f"{kind_value}: {message}"
    if isinstance(message, str):
        return message
    return str(error)


def _format_error_event(error_event: dict[str, Any] | None) -> str:
    if error_event is None:
        return "stream_error: unknown"
    kind = error_event.get("kind")
    message = error_event.get("message")
    if isinstance(kind, str) and isinstance(message, str):
        return f"{kind}: {message}"
    if isinstance(message, str):
        return message
    return "stream_error: unknown"
