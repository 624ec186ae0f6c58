"""Conversation store with whole-sequence persistence."""

from __future__ import annotations

import json
from collections.abc import Iterable

from loguru import logger

from chatline.config import DEFAULT_STORAGE_KEY
from chatline.conversation.models import Turn
from chatline.conversation.storage import KeyValueStorage
from chatline.errors import CorruptPersistedStateError

EXAMPLE_CONVERSATION: tuple[Turn, ...] = (
    Turn.user("Hello! Can you help me with a coding question?"),
    Turn.assistant(
        "Of course! I'd be happy to help with your coding question. "
        "What problem or concept would you like to look at?"
    ),
    Turn.user("How does async/await work in Python? Can you show an example?"),
    Turn.assistant(
        "Sure. `async def` declares a coroutine and `await` suspends it until the awaited "
        "operation finishes, letting the event loop run other work meanwhile:\n\n"
        "```python\n"
        "import asyncio\n\n\n"
        "async def fetch_user(user_id: int) -> dict:\n"
        "    await asyncio.sleep(0.1)  # stands in for a network call\n"
        '    return {"id": user_id, "name": "Ada"}\n\n\n'
        "async def main() -> None:\n"
        "    users = await asyncio.gather(fetch_user(1), fetch_user(2))\n"
        "    print(users)\n\n\n"
        "asyncio.run(main())\n"
        "```\n\n"
        "1. `fetch_user` is a coroutine function.\n"
        "2. `asyncio.gather` runs both calls concurrently.\n"
        "3. `asyncio.run` starts the event loop and waits for `main` to finish."
    ),
    Turn.user("That's helpful, thanks! How would I use this to load data for a web application?"),
)


class ConversationStore:
    """Ordered, append-only sequence of committed turns."""

    def __init__(self, storage: KeyValueStorage, *, key: str = DEFAULT_STORAGE_KEY) -> None:
        self._storage = storage
        self._key = key
        self._turns: list[Turn] = []

    @property
    def key(self) -> str:
        return self._key

    def __len__(self) -> int:
        return len(self._turns)

    def load(self) -> tuple[Turn, ...]:
        """Read the persisted conversation, falling back to empty on bad data."""
        raw = self._storage.get(self._key)
        if raw is None:
            self._turns = []
            return ()
        try:
            self._turns = self._parse(raw)
        except CorruptPersistedStateError as exc:
            logger.warning("conversation.load.corrupt key={} error={}", self._key, exc)
            self._turns = []
        return self.snapshot()

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)
        self.save()

    def clear(self) -> None:
        self._turns = []
        self._storage.delete(self._key)

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def save(self) -> None:
        raw = json.dumps([turn.to_payload() for turn in self._turns], ensure_ascii=False)
        self._storage.set(self._key, raw)

    def seed(self, turns: Iterable[Turn] = EXAMPLE_CONVERSATION) -> bool:
        """Populate an empty conversation with example turns."""
        if self._turns:
            return False
        self._turns.extend(turns)
        self.save()
        return True

    @staticmethod
    def _parse(raw: str) -> list[Turn]:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptPersistedStateError(f"invalid json: {exc.msg}") from exc
        if not isinstance(payload, list):
            raise CorruptPersistedStateError(f"expected a list, got {type(payload).__name__}")
        turns: list[Turn] = []
        for index, item in enumerate(payload):
            turn = Turn.from_payload(item)
            if turn is None:
                raise CorruptPersistedStateError(f"malformed turn at index {index}")
            turns.append(turn)
        return turns
