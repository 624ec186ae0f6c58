"""Conversation turn model."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One committed message in a conversation."""

    role: Role
    content: str

    @classmethod
    def user(cls, content: str) -> Turn:
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> Turn:
        return cls(Role.ASSISTANT, content)

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_payload(cls, payload: Any) -> Turn | None:
        if not isinstance(payload, dict):
            return None
        role = payload.get("role")
        content = payload.get("content")
        if role not in (Role.USER.value, Role.ASSISTANT.value):
            return None
        if not isinstance(content, str):
            return None
        return cls(Role(role), content)
