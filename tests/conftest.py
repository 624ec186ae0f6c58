from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import pytest

from chatline.conversation import ConversationStore, MemoryStorage, Turn
from chatline.session import SessionManager
from chatline.stream import StreamListener


@dataclass(eq=False)
class FakeHandle:
    aborts: int = 0

    def abort(self) -> None:
        self.aborts += 1

    async def wait(self) -> None:
        return None


@dataclass
class FakeOpener:
    handles: list[FakeHandle] = field(default_factory=list)
    contexts: list[tuple[Turn, ...]] = field(default_factory=list)
    fail_with: Exception | None = None

    def open(self, turns: Sequence[Turn], listener: StreamListener) -> FakeHandle:
        self.contexts.append(tuple(turns))
        if self.fail_with is not None:
            raise self.fail_with
        handle = FakeHandle()
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage) -> ConversationStore:
    return ConversationStore(storage)


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def manager(store: ConversationStore, opener: FakeOpener) -> SessionManager:
    return SessionManager(store, opener)
