"""Pass-through proxies for the models.dev catalog and provider logos."""

from __future__ import annotations

import logging
import re

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from ....catalog import fetch_logo, fetch_models_dev
from ....config import Settings
from ....estimator import CostEstimator
from ...errors import APIError, bad_request
from ..deps import get_estimator, get_http_client, get_settings

logger = logging.getLogger("resume_enhancer.web.api")

router = APIRouter(tags=["proxy"])

LOGO_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")
LOGO_CACHE_CONTROL = "public, max-age=86400"


@router.get("/models-dev")
async def models_dev(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
    estimator: CostEstimator = Depends(get_estimator),
) -> Response:
    try:
        upstream = await fetch_models_dev(client, settings.models_dev_url)
    except httpx.HTTPError as exc:
        raise APIError(500, f"Failed to fetch models.dev catalog: {exc}") from exc

    if upstream.is_success:
        try:
            payload = upstream.json()
        except ValueError as exc:
            logger.warning("models_dev_pricing_skipped error=%s", exc)
        else:
            if isinstance(payload, dict):
                estimator.load_models_dev(payload)
    return Response(content=upstream.content, status_code=upstream.status_code, media_type="application/json")


@router.get("/logos/{provider}")
async def logo(
    provider: str,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> Response:
    if not LOGO_NAME_RE.match(provider) or ".." in provider:
        raise bad_request(f"Invalid provider name: {provider}")
    try:
        upstream = await fetch_logo(client, provider, settings.logo_url_template)
    except httpx.HTTPError as exc:
        raise APIError(500, f"Failed to fetch logo: {exc}") from exc

    if not upstream.is_success:
        raise APIError(500, f"Logo upstream returned {upstream.status_code}")
    return Response(
        content=upstream.content,
        status_code=200,
        media_type=upstream.headers.get("content-type", "image/svg+xml"),
        headers={"Cache-Control": LOGO_CACHE_CONTROL},
    )
