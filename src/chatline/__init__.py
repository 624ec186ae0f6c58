"""chatline - streaming chat with cancellable responses."""

from .conversation import ConversationStore, Role, Turn
from .render import render
from .session import Outcome, Phase, SessionManager

__version__ = "0.1.0"

__all__ = ["ConversationStore", "Outcome", "Phase", "Role", "SessionManager", "Turn", "render"]
