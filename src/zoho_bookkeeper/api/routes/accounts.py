from typing import Annotated

from fastapi import APIRouter, Depends

from zoho_bookkeeper.api.dependencies import (
    UPSTREAM_ERRORS,
    get_cache,
    get_pipeline,
    get_zoho,
    raise_upstream,
)
from zoho_bookkeeper.api.schemas import AccountSummary, CacheStatsResponse, CandidateList
from zoho_bookkeeper.integration.zoho import ZohoBooksClient
from zoho_bookkeeper.services.categorization import CategorizationPipeline
from zoho_bookkeeper.services.zoho_data import pending_counts
from zoho_bookkeeper.storage.cache import TransactionCache

router = APIRouter()


@router.get("/api/accounts", response_model=list[AccountSummary])
async def list_accounts(
    zoho: Annotated[ZohoBooksClient, Depends(get_zoho)],
    cache: Annotated[TransactionCache, Depends(get_cache)],
) -> list[AccountSummary]:
    try:
        accounts = await zoho.fetch_bank_accounts()
        counts = await pending_counts(zoho, cache, accounts)
    except UPSTREAM_ERRORS as exc:
        raise_upstream("Loading bank accounts", exc)

    return [
        AccountSummary(account=account, pending=counts.get(account.account_id, 0))
        for account in accounts
    ]


@router.get("/api/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(
    cache: Annotated[TransactionCache, Depends(get_cache)],
) -> CacheStatsResponse:
    stats = cache.get_stats()
    return CacheStatsResponse(processed=stats.processed, skipped=stats.skipped, vendors=stats.vendors)


@router.get("/api/accounts/{account_id}/transactions", response_model=CandidateList)
async def list_candidates(
    account_id: str,
    zoho: Annotated[ZohoBooksClient, Depends(get_zoho)],
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
    year: int | None = None,
) -> CandidateList:
    try:
        transactions = await pipeline.load_candidates(zoho, account_id, year)
    except UPSTREAM_ERRORS as exc:
        raise_upstream("Loading transactions", exc)
    return CandidateList(account_id=account_id, transactions=transactions)
