"""CLI renderer for chatline."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.markdown import Markdown
from rich.markup import escape
from rich.text import Text

from chatline.conversation.models import Role, Turn
from chatline.session import SessionView

DraftUpdater = Callable[[SessionView], None]


class Renderer:
    """CLI renderer using Rich for terminal output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console: Console = console or Console()
        self._prompt_session: PromptSession[str] | None = None
        self._print_lock = threading.Lock()

    def info(self, message: str) -> None:
        """Render an info message."""
        self._print(message)

    def error(self, message: str) -> None:
        """Render an error message."""
        self._print(f"[bold red]Error:[/bold red] {escape(message)}")

    def welcome(self, model: str) -> None:
        self._print(f"[bold blue]chatline[/bold blue] [dim]model:[/dim] [magenta]{escape(model)}[/magenta]")
        self._print("[dim]Ctrl-C cancels a response, /clear resets the conversation, /quit exits.[/dim]")

    def user_message(self, message: str) -> None:
        """Render user message."""
        self._print(f"[bold cyan]You:[/bold cyan] {escape(message)}")

    def assistant_message(self, message: str) -> None:
        """Render assistant message as markdown."""
        with self._print_lock:
            self.console.print("[bold yellow]Assistant:[/bold yellow]")
            self.console.print(Markdown(message))

    def turn(self, turn: Turn) -> None:
        if turn.role is Role.USER:
            self.user_message(turn.content)
        else:
            self.assistant_message(turn.content)

    def history(self, turns: Iterable[Turn]) -> None:
        for turn in turns:
            self.turn(turn)

    @contextmanager
    def live_draft(self) -> Iterator[DraftUpdater]:
        """Show the in-flight response until the context exits."""
        with Live(_waiting(), console=self.console, refresh_per_second=12, transient=True) as live:

            def update(view: SessionView) -> None:
                live.update(_draft_renderable(view))

            yield update

    async def get_user_input(self) -> str:
        """Prompt user for input."""
        if self._prompt_session is None:
            self._prompt_session = PromptSession()
        with patch_stdout(raw=True):
            return await self._prompt_session.prompt_async("> ")

    def _print(self, message: str) -> None:
        with self._print_lock:
            self.console.print(message)


def _waiting() -> RenderableType:
    return Text("Waiting for response...", style="dim")


def _draft_renderable(view: SessionView) -> RenderableType:
    if view.cancel_requested:
        return Text("Cancelling...", style="dim red")
    if not view.draft_text:
        return _waiting()
    return Group(Text("Assistant:", style="bold yellow"), Markdown(view.draft_text))


def create_cli_renderer() -> Renderer:
    """Create and return a Renderer instance."""
    return Renderer()
