"""Anthropic messages adapter over raw HTTP."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx

from ..errors import ProviderConnectionError, ProviderHttpError, ProviderParseError
from .types import Message

ANTHROPIC_API_BASE = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


def flatten_messages(messages: List[Message]) -> str:
    """Collapse a conversation into one Human/Assistant transcript."""
    return "\n\n".join(
        f"{'Human' if message.role == 'user' else 'Assistant'}: {message.content}"
        for message in messages
    )


class AnthropicAdapter:
    """Adapter for the Anthropic messages API.

    The conversation is flattened into a single ``user`` turn, so the
    caller's role sequence never has to satisfy Anthropic's alternation rules.
    """

    name = "anthropic"

    def __init__(
        self,
        api_base: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        self.api_base = (api_base or ANTHROPIC_API_BASE).rstrip("/")
        self._http_client = http_client
        self.timeout = timeout

    def build_payload(self, model: str, messages: List[Message], max_tokens: int) -> Dict[str, Any]:
        return {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": flatten_messages(messages)}],
        }

    async def invoke(
        self,
        api_key: str,
        model: str,
        messages: List[Message],
        max_tokens: int,
    ) -> str:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        payload = self.build_payload(model, messages, max_tokens)
        url = f"{self.api_base}/messages"

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as error:
            raise ProviderConnectionError(self.name, f"Anthropic connection failed: {error}") from error

        if not response.is_success:
            raise ProviderHttpError(self.name, response.status_code, response.text)

        try:
            data = response.json()
        except json.JSONDecodeError as error:
            raise ProviderParseError(self.name, "Anthropic response was not valid JSON") from error
        return self._extract_text(data)

    def _extract_text(self, data: Any) -> str:
        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, list):
            raise ProviderParseError(self.name, "Anthropic response is missing the 'content' list")
        if not content:
            return ""
        first = content[0]
        if not isinstance(first, dict):
            raise ProviderParseError(self.name, "Anthropic content block is not an object")
        return str(first.get("text") or "")
