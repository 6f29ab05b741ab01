"""OpenAI chat-completions adapter."""

from __future__ import annotations

from typing import Any, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from ..errors import ProviderConnectionError, ProviderHttpError, ProviderParseError
from .base import DEFAULT_TEMPERATURE
from .types import Message, messages_to_dicts


class OpenAIAdapter:
    """Adapter for OpenAI-compatible chat APIs."""

    name = "openai"

    def __init__(
        self,
        api_base: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_base = api_base or ""
        self._http_client = http_client

    async def invoke(
        self,
        api_key: str,
        model: str,
        messages: List[Message],
        max_tokens: int,
    ) -> str:
        client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.api_base or None,
            max_retries=0,
            http_client=self._http_client,
        )
        try:
            completion = await client.chat.completions.create(
                model=model,
                messages=messages_to_dicts(messages),  # type: ignore[arg-type]
                max_tokens=max_tokens,
                temperature=DEFAULT_TEMPERATURE,
            )
        except openai.APIStatusError as error:
            raise ProviderHttpError(self.name, error.status_code, error.response.text) from error
        except openai.APIConnectionError as error:
            raise ProviderConnectionError(self.name, f"OpenAI connection failed: {error}") from error
        except (openai.APIResponseValidationError, ValueError) as error:
            raise ProviderParseError(self.name, f"Malformed OpenAI response: {error}") from error
        finally:
            # An injected client is shared and owned by the caller.
            if self._http_client is None:
                await client.close()

        return self._extract_text(completion)

    def _extract_text(self, completion: Any) -> str:
        if isinstance(completion, (str, bytes)):
            raise ProviderParseError(self.name, "Malformed OpenAI response: expected a JSON object")

        choices = getattr(completion, "choices", None) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) if message is not None else None
        return self._normalize_message_content(content)

    def _normalize_message_content(self, content: Any) -> str:
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            chunks: List[str] = []
            for item in content:
                if isinstance(item, dict):
                    chunks.append(str(item.get("text", "") or ""))
                else:
                    chunks.append(str(getattr(item, "text", "") or ""))
            return "".join(chunks)
        return str(content)
