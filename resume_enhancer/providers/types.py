"""Provider-agnostic message types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class Message:
    """One conversation turn passed to a provider adapter."""

    role: str  # "user" | "assistant"
    content: str

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role="assistant", content=content)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(role=str(data.get("role", "user")), content=str(data.get("content", "") or ""))

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


def messages_to_dicts(messages: List[Message]) -> List[Dict[str, str]]:
    return [message.to_dict() for message in messages]
