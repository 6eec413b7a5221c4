from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from zoho_bookkeeper.api.dependencies import (
    UPSTREAM_ERRORS,
    get_pipeline,
    get_zoho,
    raise_upstream,
)
from zoho_bookkeeper.api.schemas import SaveRequest, SaveResponse, SuggestResponse
from zoho_bookkeeper.integration.zoho import ZohoBooksClient
from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.services.categorization import CategorizationPipeline, SuggestionContext
from zoho_bookkeeper.services.zoho_data import fetch_vendor_names

logger = get_logger(__name__)

router = APIRouter()


def _save_cache(pipeline: CategorizationPipeline) -> None:
    try:
        pipeline.cache.save()
    except OSError as exc:
        logger.error("[API] Saving cache failed: %s", exc)
        raise HTTPException(status_code=500, detail=f"Saving cache failed: {exc}") from exc


@router.post(
    "/api/accounts/{account_id}/transactions/{transaction_id}/suggest",
    response_model=SuggestResponse,
)
async def suggest_transaction(
    account_id: str,
    transaction_id: str,
    zoho: Annotated[ZohoBooksClient, Depends(get_zoho)],
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> SuggestResponse:
    try:
        candidates = await pipeline.load_candidates(zoho, account_id)
        transaction = next((tx for tx in candidates if tx.transaction_id == transaction_id), None)
        if transaction is None:
            raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} is not awaiting review")

        bank_accounts = await zoho.fetch_bank_accounts()
        vendors = await fetch_vendor_names(zoho)
        context = SuggestionContext.for_account(account_id, bank_accounts, vendors)
        prepared = await pipeline.prepare(transaction, context, zoho)
    except UPSTREAM_ERRORS as exc:
        raise_upstream("Suggestion", exc)

    return SuggestResponse(
        categorized=prepared.categorized,
        debug_lines=prepared.debug_lines,
        available_types=prepared.available_types,
        transfer_account=prepared.transfer_account,
    )


@router.post("/api/transactions/save", response_model=SaveResponse)
async def save_transaction(
    req: SaveRequest,
    zoho: Annotated[ZohoBooksClient, Depends(get_zoho)],
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> SaveResponse:
    transaction_id = req.categorized.transaction.transaction_id
    try:
        await pipeline.apply_or_raise(req.categorized, zoho)
    except UPSTREAM_ERRORS as exc:
        raise_upstream(f"Categorizing {transaction_id}", exc)

    _save_cache(pipeline)
    return SaveResponse(transaction_id=transaction_id, status="processed")


@router.post("/api/transactions/{transaction_id}/skip", response_model=SaveResponse)
async def skip_transaction(
    transaction_id: str,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> SaveResponse:
    pipeline.cache.mark_skipped(transaction_id)
    _save_cache(pipeline)
    return SaveResponse(transaction_id=transaction_id, status="skipped")
