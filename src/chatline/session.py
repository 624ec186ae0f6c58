"""Streaming session state machine."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from chatline.conversation.models import Turn
from chatline.conversation.store import ConversationStore
from chatline.errors import MalformedResponseError, TransportError
from chatline.stream import FinalMessage, StreamHandle, StreamOpener

APOLOGY_TEXT = "I'm sorry, I encountered an error. Please try again."
CANCELLED_TEXT = "Generation was cancelled."


class Phase(StrEnum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


class Outcome(StrEnum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


@dataclass(frozen=True)
class SessionView:
    """Observable session state handed to the presentation layer."""

    phase: Phase
    draft_text: str
    turns: tuple[Turn, ...]
    cancel_requested: bool
    last_outcome: Outcome | None


SessionListener = Callable[[SessionView], None]


class SessionManager:
    """Drives one request/response cycle at a time against a remote stream.

    Phase moves Idle -> AwaitingResponse on ``submit`` and back to Idle on the
    stream's terminal event. The store only ever receives committed turns: the
    in-flight response lives in ``draft_text`` until it completes.
    """

    def __init__(self, store: ConversationStore, opener: StreamOpener) -> None:
        self._store = store
        self._opener = opener
        self._phase = Phase.IDLE
        self._draft_text = ""
        self._cancel_requested = False
        self._active_handle: StreamHandle | None = None
        self._last_outcome: Outcome | None = None
        self._listeners: list[SessionListener] = []
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def draft_text(self) -> str:
        return self._draft_text

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def active_handle(self) -> StreamHandle | None:
        return self._active_handle

    @property
    def last_outcome(self) -> Outcome | None:
        return self._last_outcome

    @property
    def turns(self) -> tuple[Turn, ...]:
        return self._store.snapshot()

    def view(self) -> SessionView:
        return SessionView(
            phase=self._phase,
            draft_text=self._draft_text,
            turns=self._store.snapshot(),
            cancel_requested=self._cancel_requested,
            last_outcome=self._last_outcome,
        )

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a state-change callback and return its unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_idle(self) -> None:
        await self._idle.wait()

    def submit(self, text: str) -> bool:
        if self._phase is not Phase.IDLE or not text.strip():
            return False

        self._commit(Turn.user(text))
        self._phase = Phase.AWAITING_RESPONSE
        self._draft_text = ""
        self._cancel_requested = False
        self._last_outcome = None
        self._idle.clear()
        logger.info("session.submit turns={}", len(self._store))
        try:
            handle = self._opener.open(self._store.snapshot(), self)
        except Exception as exc:
            self._finish_with_error(exc)
            return True

        # A handle may report its terminal event synchronously from open().
        if self._phase is Phase.AWAITING_RESPONSE and self._active_handle is None:
            self._active_handle = handle
        self._notify()
        return True

    def cancel(self) -> bool:
        if self._phase is not Phase.AWAITING_RESPONSE or self._active_handle is None:
            return False
        if self._cancel_requested:
            return False

        self._cancel_requested = True
        logger.info("session.cancel")
        self._active_handle.abort()
        self._commit(Turn.assistant(CANCELLED_TEXT))
        self._notify()
        return True

    def clear(self) -> bool:
        if self._phase is not Phase.IDLE:
            return False
        self._persist(self._store.clear)
        self._last_outcome = None
        self._notify()
        return True

    # Stream event dispatch

    def on_connect(self, handle: StreamHandle) -> None:
        if self._is_stale(handle, "connect"):
            return
        logger.debug("session.stream.connect")

    def on_text(self, handle: StreamHandle, delta: str, snapshot: str) -> None:
        if self._is_stale(handle, "text") or self._cancel_requested:
            return
        self._draft_text = snapshot.strip()
        self._notify()

    def on_final_message(self, handle: StreamHandle, message: FinalMessage) -> None:
        if self._is_stale(handle, "final_message"):
            return
        if self._cancel_requested:
            logger.info("session.final.discarded reason=cancelled")
            self._finish(Outcome.CANCELLED)
            return

        text = message.text
        if text is None:
            block_type = message.blocks[0].type if message.blocks else "empty"
            error = MalformedResponseError(f"unexpected content block type: {block_type}")
            logger.error("session.final.malformed error={}", error)
            self._commit(Turn.assistant(APOLOGY_TEXT))
            self._finish(Outcome.ERRORED)
            return

        self._commit(Turn.assistant(text))
        self._finish(Outcome.COMPLETED)

    def on_error(self, handle: StreamHandle, cause: BaseException) -> None:
        if self._is_stale(handle, "error"):
            return
        self._finish_with_error(cause)

    def _finish_with_error(self, cause: BaseException) -> None:
        if self._cancel_requested:
            logger.info("session.cancelled cause={}", cause)
            self._finish(Outcome.CANCELLED)
            return
        error = cause if isinstance(cause, TransportError) else TransportError(str(cause))
        logger.error("session.stream.error error={}", error)
        self._commit(Turn.assistant(APOLOGY_TEXT))
        self._finish(Outcome.ERRORED)

    def _finish(self, outcome: Outcome) -> None:
        self._active_handle = None
        self._draft_text = ""
        self._cancel_requested = False
        self._last_outcome = outcome
        try:
            self._persist(self._store.save)
        finally:
            self._phase = Phase.IDLE
            self._idle.set()
        logger.info("session.finish outcome={}", outcome)
        self._notify()

    def _commit(self, turn: Turn) -> None:
        self._persist(lambda: self._store.append(turn))

    def _persist(self, write: Callable[[], None]) -> None:
        # The in-memory conversation stays authoritative when storage fails.
        try:
            write()
        except Exception:
            logger.exception("session.persist.error key={}", self._store.key)

    def _is_stale(self, handle: StreamHandle, kind: str) -> bool:
        if self._phase is not Phase.AWAITING_RESPONSE:
            logger.debug("session.event.ignored kind={} reason=idle", kind)
            return True
        if self._active_handle is not None and handle is not self._active_handle:
            logger.debug("session.event.ignored kind={} reason=stale_handle", kind)
            return True
        return False

    def _notify(self) -> None:
        view = self.view()
        for listener in list(self._listeners):
            listener(view)
