"""Provider adapter protocol definition."""

from __future__ import annotations

from typing import List, Protocol

from .types import Message

DEFAULT_TEMPERATURE = 0.7


class ProviderAdapter(Protocol):
    """Translate a normalized chat request to one provider's wire format.

    Implementations are stateless between calls and never retry; the
    orchestrator owns the retry policy.
    """

    name: str

    async def invoke(
        self,
        api_key: str,
        model: str,
        messages: List[Message],
        max_tokens: int,
    ) -> str: ...
