from typing import NoReturn

import httpx
import openai
from fastapi import HTTPException, Request

from zoho_bookkeeper.integration.zoho import ZohoBooksClient, ZohoBooksError
from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.services.categorization import CategorizationPipeline
from zoho_bookkeeper.storage.cache import TransactionCache

logger = get_logger(__name__)

UPSTREAM_ERRORS = (httpx.HTTPError, ZohoBooksError, openai.APIError)


def get_pipeline(request: Request) -> CategorizationPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if not pipeline:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return pipeline


def get_cache(request: Request) -> TransactionCache:
    cache = getattr(request.app.state, "cache", None)
    if not cache:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return cache


def get_zoho(request: Request) -> ZohoBooksClient:
    zoho = getattr(request.app.state, "zoho", None)
    if not zoho:
        raise HTTPException(status_code=500, detail="Zoho Books not configured")
    return zoho


def raise_upstream(action: str, exc: Exception) -> NoReturn:
    logger.error("[API] %s failed: %s", action, exc)
    raise HTTPException(status_code=502, detail=f"{action} failed: {exc}") from exc
