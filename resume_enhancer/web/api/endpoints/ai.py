"""Provider-facing endpoints: connection test, chat, models, enhance, refine."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ....catalog import list_models
from ....config import Settings
from ....errors import UnsupportedProviderError
from ....models import AIEnhancementResult, EnhancementOptions
from ....orchestrator import EnhancementOrchestrator
from ....providers import supported_providers
from ....providers.types import Message
from ...errors import bad_request
from ..deps import get_http_client, get_orchestrator, get_settings

router = APIRouter(tags=["ai"])


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatMessage(_Body):
    role: str = "user"
    content: str = ""


class ConnectionTestRequest(_Body):
    provider: Optional[str] = None
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    model: Optional[str] = None


class ChatRequest(_Body):
    provider: Optional[str] = None
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    model: Optional[str] = None
    messages: Optional[List[ChatMessage]] = None
    max_tokens: Optional[int] = Field(default=None, alias="maxTokens", gt=0)


class ModelsRequest(_Body):
    provider: Optional[str] = None
    api_key: Optional[str] = Field(default=None, alias="apiKey")


class EnhanceRequest(_Body):
    options: Optional[Dict[str, Any]] = None
    original_text: str = Field(default="", alias="originalText")
    parsed_data: Optional[Dict[str, Any]] = Field(default=None, alias="parsedData")
    api_key: Optional[str] = Field(default=None, alias="apiKey")


class RefineRequest(_Body):
    result: Optional[Dict[str, Any]] = None
    instructions: Optional[str] = None
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    original_text: Optional[str] = Field(default=None, alias="originalText")
    parsed_data: Optional[Dict[str, Any]] = Field(default=None, alias="parsedData")


def _require_supported(provider: str) -> str:
    provider = provider.lower()
    if provider not in supported_providers():
        raise UnsupportedProviderError(provider)
    return provider


@router.post("/test")
async def test_connection(
    request: ConnectionTestRequest,
    orchestrator: EnhancementOrchestrator = Depends(get_orchestrator),
) -> Any:
    if not request.provider or not request.api_key:
        raise bad_request("Missing required fields: provider, apiKey")
    provider = _require_supported(request.provider)

    ok, text = await orchestrator.test_connection(provider, request.api_key, request.model)
    if not ok:
        return JSONResponse(status_code=500, content={"success": False, "error": text})
    return {"success": True, "response": text}


@router.post("/chat")
async def chat(
    request: ChatRequest,
    orchestrator: EnhancementOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> Dict[str, str]:
    if not request.provider or not request.api_key or request.messages is None:
        raise bad_request("Missing required fields: provider, apiKey, messages")
    provider = _require_supported(request.provider)

    content = await orchestrator.chat(
        provider,
        request.api_key,
        [Message(role=item.role, content=item.content) for item in request.messages],
        model=request.model or settings.default_models.get(provider),
        max_tokens=request.max_tokens or settings.chat_max_tokens,
    )
    return {"content": content}


@router.post("/models")
async def models(
    request: ModelsRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Dict[str, Any]:
    if not request.provider or not request.api_key:
        raise bad_request("Missing required fields: provider, apiKey")
    provider = _require_supported(request.provider)

    listed = await list_models(provider, request.api_key, client)
    return {"models": [model.to_dict() for model in listed]}


@router.post("/enhance")
async def enhance(
    request: EnhanceRequest,
    orchestrator: EnhancementOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    if not request.options or not request.options.get("provider"):
        raise bad_request("Missing required fields: options.provider")

    options = EnhancementOptions.from_dict(request.options)
    result = await orchestrator.enhance(options, request.original_text, request.parsed_data, request.api_key)
    return result.to_dict()


@router.post("/refine")
async def refine(
    request: RefineRequest,
    orchestrator: EnhancementOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    if not request.result or request.instructions is None:
        raise bad_request("Missing required fields: result, instructions")

    try:
        previous = AIEnhancementResult.from_dict(request.result)
    except (TypeError, ValueError) as exc:
        raise bad_request(f"Invalid result payload: {exc}") from exc
    result = await orchestrator.refine(
        previous,
        request.instructions,
        api_key=request.api_key,
        original_text=request.original_text,
        parsed_data=request.parsed_data,
    )
    return result.to_dict()
