"""Interactive chat loop for the terminal."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Iterator
from contextlib import contextmanager

from chatline.session import SessionManager

from .render import Renderer

QUIT_COMMANDS = frozenset({"/quit", "/exit", "/q"})
CLEAR_COMMAND = "/clear"


async def run_chat(manager: SessionManager, renderer: Renderer) -> None:
    renderer.history(manager.turns)
    while True:
        try:
            user_input = await renderer.get_user_input()
        except (KeyboardInterrupt, EOFError):
            renderer.info("Goodbye!")
            return

        command = user_input.strip()
        if not command:
            continue
        if command in QUIT_COMMANDS:
            renderer.info("Goodbye!")
            return
        if command == CLEAR_COMMAND:
            manager.clear()
            renderer.info("[yellow]Conversation cleared.[/yellow]")
            continue

        await stream_response(manager, renderer, user_input)


async def stream_response(manager: SessionManager, renderer: Renderer, text: str) -> None:
    """Submit one message and render the response until the session is idle again."""
    # The prompt already echoed the user's text, so only later turns are printed.
    seen = len(manager.turns) + 1
    with renderer.live_draft() as update:
        unsubscribe = manager.subscribe(update)
        try:
            if not manager.submit(text):
                return
            with _cancel_on_interrupt(manager):
                await manager.wait_idle()
        finally:
            unsubscribe()
    for turn in manager.turns[seen:]:
        renderer.turn(turn)


@contextmanager
def _cancel_on_interrupt(manager: SessionManager) -> Iterator[None]:
    loop = asyncio.get_running_loop()
    installed = True
    try:
        loop.add_signal_handler(signal.SIGINT, manager.cancel)
    except NotImplementedError:
        # Event loops without signal support (Windows) fall back to the default handler.
        installed = False
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
