"""Gemini provider adapter using the google-genai SDK."""

from __future__ import annotations

import json
from typing import Any, Callable, List, Optional, Tuple

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..errors import ProviderConnectionError, ProviderHttpError, ProviderParseError
from .base import DEFAULT_TEMPERATURE
from .types import Message

ClientFactory = Callable[[str], Any]


def flatten_contents(messages: List[Message]) -> str:
    """Join every message body with blank lines; roles are dropped."""
    return "\n\n".join(message.content for message in messages)


def _default_client_factory(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


class GeminiAdapter:
    """Google Gemini adapter.

    ``client_factory`` builds a ``genai.Client`` for a given key; tests swap it
    for a fake exposing ``aio.models.generate_content``.
    """

    name = "gemini"

    def __init__(self, client_factory: Optional[ClientFactory] = None) -> None:
        self._client_factory = client_factory or _default_client_factory

    def build_request(self, messages: List[Message], max_tokens: int) -> Tuple[List[types.Content], types.GenerateContentConfig]:
        contents = [
            types.Content(
                role="user",
                parts=[types.Part.from_text(text=flatten_contents(messages))],
            )
        ]
        config = types.GenerateContentConfig(
            max_output_tokens=max_tokens,
            temperature=DEFAULT_TEMPERATURE,
        )
        return contents, config

    async def invoke(
        self,
        api_key: str,
        model: str,
        messages: List[Message],
        max_tokens: int,
    ) -> str:
        client = self._client_factory(api_key)
        contents, config = self.build_request(messages, max_tokens)
        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as error:
            raise ProviderHttpError(self.name, int(error.code or 500), self._error_body(error)) from error
        except httpx.HTTPError as error:
            raise ProviderConnectionError(self.name, f"Gemini connection failed: {error}") from error

        return self._extract_text(response)

    def _error_body(self, error: genai_errors.APIError) -> str:
        details = getattr(error, "details", None)
        if details:
            try:
                return json.dumps(details, ensure_ascii=False)
            except (TypeError, ValueError):
                return str(details)
        return str(getattr(error, "message", "") or error)

    def _extract_text(self, response: Any) -> str:
        candidates = getattr(response, "candidates", None)
        if not candidates:
            raise ProviderParseError(self.name, "Empty Gemini response: no candidates")

        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) if content is not None else None
        if not parts:
            return ""
        return str(getattr(parts[0], "text", "") or "")
