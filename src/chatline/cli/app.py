"""chatline command line interface."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from chatline.config import Settings, get_settings
from chatline.conversation import ConversationStore, FileStorage
from chatline.errors import ConfigurationError
from chatline.integrations.republic_client import build_stream_opener
from chatline.logging_utils import configure_logging
from chatline.render import render_document
from chatline.session import SessionManager

from .live import run_chat
from .render import create_cli_renderer

app = typer.Typer(
    name="chatline",
    help="Chat with a streaming language model from the terminal.",
    add_completion=False,
    rich_markup_mode="rich",
)

HomeOption = Annotated[Path | None, typer.Option("--home", help="Directory holding persisted state")]


def build_store(settings: Settings) -> ConversationStore:
    """Open the persisted conversation for the configured home directory."""
    store = ConversationStore(FileStorage(settings.resolve_home()), key=settings.storage_key)
    store.load()
    if settings.prepopulate:
        store.seed()
    return store


def build_session(settings: Settings) -> SessionManager:
    return SessionManager(build_store(settings), build_stream_opener(settings))


@app.command()
def chat(
    home: HomeOption = None,
    model: Annotated[str | None, typer.Option("--model", help="Model in provider:model format")] = None,
    max_tokens: Annotated[int | None, typer.Option("--max-tokens", help="Maximum tokens per response")] = None,
    prepopulate: Annotated[
        bool | None, typer.Option("--prepopulate/--no-prepopulate", help="Seed an example conversation")
    ] = None,
) -> None:
    """Start an interactive chat session."""
    renderer = create_cli_renderer()
    settings = get_settings(home=home, model=model, max_tokens=max_tokens, prepopulate=prepopulate)
    configure_logging(profile="chat", level=settings.log_level)
    try:
        manager = build_session(settings)
    except ConfigurationError as exc:
        renderer.error(str(exc))
        raise typer.Exit(1) from exc

    renderer.welcome(settings.model)
    asyncio.run(run_chat(manager, renderer))


@app.command()
def history(home: HomeOption = None) -> None:
    """Print the stored conversation."""
    renderer = create_cli_renderer()
    settings = get_settings(home=home)
    configure_logging(level=settings.log_level)
    store = build_store(settings)
    if not len(store):
        renderer.info("[dim]No conversation yet.[/dim]")
        return
    renderer.history(store.snapshot())


@app.command()
def clear(home: HomeOption = None) -> None:
    """Erase the stored conversation."""
    renderer = create_cli_renderer()
    settings = get_settings(home=home)
    configure_logging(level=settings.log_level)
    build_store(settings).clear()
    renderer.info("Conversation cleared.")


@app.command()
def export(
    path: Annotated[Path, typer.Argument(help="Destination HTML file")],
    home: HomeOption = None,
) -> None:
    """Export the stored conversation as sanitized HTML."""
    renderer = create_cli_renderer()
    settings = get_settings(home=home)
    configure_logging(level=settings.log_level)
    store = build_store(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_document(store.snapshot()), encoding="utf-8")
    renderer.info(f"Exported {len(store)} turns to [cyan]{escape(str(path))}[/cyan]")
