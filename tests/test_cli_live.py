import asyncio
from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from chatline.cli.live import run_chat, stream_response
from chatline.conversation import ConversationStore, MemoryStorage, Turn
from chatline.session import CANCELLED_TEXT, Outcome, SessionManager, SessionView
from chatline.stream import FinalMessage, TaskStreamHandle


class ScriptedOpener:
    def __init__(self, reply: str, *, hold: bool = False) -> None:
        self.reply = reply
        self.hold = hold

    def open(self, turns, listener) -> TaskStreamHandle:
        async def _source(handle: TaskStreamHandle) -> None:
            handle.emit_connect()
            handle.emit_text(self.reply, self.reply)
            if self.hold:
                await asyncio.Event().wait()
            handle.emit_final(FinalMessage.from_text(self.reply))

        return TaskStreamHandle.start(_source, listener)


class FakeRenderer:
    def __init__(self, inputs: list[str | BaseException] | None = None) -> None:
        self.inputs = list(inputs or [])
        self.printed: list[Turn] = []
        self.infos: list[str] = []
        self.views: list[SessionView] = []
        self.on_view = None

    def history(self, turns) -> None:
        self.printed.extend(turns)

    def turn(self, turn: Turn) -> None:
        self.printed.append(turn)

    def info(self, message: str) -> None:
        self.infos.append(message)

    @contextmanager
    def live_draft(self) -> Iterator:
        def update(view: SessionView) -> None:
            self.views.append(view)
            if self.on_view is not None:
                self.on_view(view)

        yield update

    async def get_user_input(self) -> str:
        if not self.inputs:
            raise EOFError
        item = self.inputs.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _manager(opener) -> SessionManager:
    return SessionManager(ConversationStore(MemoryStorage()), opener)


@pytest.mark.asyncio
async def test_stream_response_prints_only_new_assistant_turns() -> None:
    manager = _manager(ScriptedOpener("Hi there!"))
    renderer = FakeRenderer()

    await asyncio.wait_for(stream_response(manager, renderer, "Hello"), timeout=1.0)

    assert renderer.printed == [Turn.assistant("Hi there!")]
    assert renderer.views[0].draft_text == ""
    assert any(view.draft_text == "Hi there!" for view in renderer.views)


@pytest.mark.asyncio
async def test_stream_response_cancel_mid_stream() -> None:
    manager = _manager(ScriptedOpener("partial", hold=True))
    renderer = FakeRenderer()
    renderer.on_view = lambda view: manager.cancel() if view.draft_text == "partial" else None

    await asyncio.wait_for(stream_response(manager, renderer, "Hello"), timeout=1.0)

    assert renderer.printed == [Turn.assistant(CANCELLED_TEXT)]
    assert manager.last_outcome is Outcome.CANCELLED


@pytest.mark.asyncio
async def test_run_chat_handles_commands_and_exits() -> None:
    manager = _manager(ScriptedOpener("ok"))
    manager.submit("before")
    await manager.wait_idle()
    renderer = FakeRenderer(["   ", "/clear", "hello", "/quit"])

    await asyncio.wait_for(run_chat(manager, renderer), timeout=1.0)

    assert renderer.printed[:2] == [Turn.user("before"), Turn.assistant("ok")]
    assert renderer.printed[2:] == [Turn.assistant("ok")]
    assert manager.turns == (Turn.user("hello"), Turn.assistant("ok"))
    assert renderer.infos[-1] == "Goodbye!"


@pytest.mark.asyncio
async def test_run_chat_exits_on_interrupt_at_prompt() -> None:
    manager = _manager(ScriptedOpener("ok"))
    renderer = FakeRenderer([KeyboardInterrupt()])

    await asyncio.wait_for(run_chat(manager, renderer), timeout=1.0)

    assert renderer.infos == ["Goodbye!"]
    assert manager.turns == ()
