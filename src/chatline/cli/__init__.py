"""Terminal interface for chatline."""

from .app import app
from .render import Renderer

__all__ = [
    "Renderer",
    "app",
]
