"""Remote stream capability contract and the task-backed stream handle."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from chatline.conversation.models import Turn
from chatline.errors import StreamAbortedError, TransportError


@dataclass(frozen=True)
class ContentBlock:
    type: str
    text: str | None = None


@dataclass(frozen=True)
class FinalMessage:
    """Completed response as reported by the remote service."""

    blocks: tuple[ContentBlock, ...]

    @classmethod
    def from_text(cls, text: str) -> FinalMessage:
        return cls((ContentBlock("text", text),))

    @property
    def text(self) -> str | None:
        """Text of the leading block, or None when it is not a text block."""
        if not self.blocks:
            return None
        first = self.blocks[0]
        if first.type != "text" or not isinstance(first.text, str):
            return None
        return first.text


class StreamHandle(Protocol):
    def abort(self) -> None: ...

    async def wait(self) -> None: ...


class StreamListener(Protocol):
    def on_connect(self, handle: StreamHandle) -> None: ...

    def on_text(self, handle: StreamHandle, delta: str, snapshot: str) -> None: ...

    def on_final_message(self, handle: StreamHandle, message: FinalMessage) -> None: ...

    def on_error(self, handle: StreamHandle, cause: BaseException) -> None: ...


class StreamOpener(Protocol):
    def open(self, turns: Sequence[Turn], listener: StreamListener) -> StreamHandle: ...


StreamSource = Callable[["TaskStreamHandle"], Awaitable[None]]


class TaskStreamHandle:
    """Stream handle driven by one asyncio task.

    The source coroutine reports progress through ``emit_*``. Exactly one terminal
    event reaches the listener: the source's final message, an error raised by the
    source, or a ``StreamAbortedError`` once ``abort()`` cancelled the task.
    """

    def __init__(self, listener: StreamListener) -> None:
        self._listener = listener
        self._task: asyncio.Task[None] | None = None
        self._terminated = False
        self._done = asyncio.Event()

    @classmethod
    def start(cls, source: StreamSource, listener: StreamListener) -> TaskStreamHandle:
        handle = cls(listener)
        handle._task = asyncio.get_running_loop().create_task(handle._run(source))
        handle._task.add_done_callback(handle._on_task_done)
        return handle

    @property
    def terminated(self) -> bool:
        return self._terminated

    def abort(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        await self._done.wait()

    def emit_connect(self) -> None:
        if not self._terminated:
            self._listener.on_connect(self)

    def emit_text(self, delta: str, snapshot: str) -> None:
        if not self._terminated:
            self._listener.on_text(self, delta, snapshot)

    def emit_final(self, message: FinalMessage) -> None:
        if self._terminated:
            return
        self._terminated = True
        self._listener.on_final_message(self, message)

    def emit_error(self, cause: BaseException) -> None:
        if self._terminated:
            return
        self._terminated = True
        self._listener.on_error(self, cause)

    async def _run(self, source: StreamSource) -> None:
        try:
            await source(self)
        except Exception as exc:
            # Failures after the terminal event come from the listener, not the stream.
            if self._terminated:
                raise
            self.emit_error(_as_transport_error(exc))
            return
        if not self._terminated:
            self.emit_error(TransportError("stream closed without a final message"))

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            self.emit_error(StreamAbortedError("stream aborted"))
        self._done.set()


def _as_transport_error(exc: Exception) -> TransportError:
    if isinstance(exc, TransportError):
        return exc
    message = "stream timed out" if isinstance(exc, TimeoutError) else f"{type(exc).__name__}: {exc}"
    error = TransportError(message)
    error.__cause__ = exc
    return error
