from datetime import date
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from zoho_bookkeeper.domain.transaction_types import TransactionType
from zoho_bookkeeper.models import Account, BankAccount, BankTransaction, TransactionSuggestion
from zoho_bookkeeper.services.categorization import CategorizationPipeline, SuggestionContext
from zoho_bookkeeper.services.review import ReviewDecision, ReviewItem, ReviewSession
from zoho_bookkeeper.storage.cache import TransactionCache
from zoho_bookkeeper.suggestions.llm import LLMSuggester


def _transaction(transaction_id: str) -> BankTransaction:
    return BankTransaction(
        transaction_id=transaction_id,
        date=date(2024, 6, 1),
        amount=Decimal("12.00"),
        is_debit=True,
        description=f"purchase {transaction_id}",
        account_id="acct-1",
    )


@pytest.fixture
def client() -> AsyncMock:
    client = AsyncMock()
    client.fetch_uncategorized_transactions.return_value = [_transaction("t1"), _transaction("t2")]
    client.search_account_by_name.return_value = Account(account_id="c1", account_name="Uncategorized")
    return client


@pytest.fixture
def context() -> SuggestionContext:
    return SuggestionContext.for_account("acct-1", [BankAccount(account_id="acct-1", account_name="Checking")])


def _scripted(*decisions: ReviewDecision) -> tuple[AsyncMock, list[ReviewItem]]:
    seen: list[ReviewItem] = []
    queue = list(decisions)

    async def decide(item: ReviewItem) -> ReviewDecision:
        seen.append(item)
        return queue.pop(0)

    return AsyncMock(side_effect=decide), seen


@pytest.mark.anyio
async def test_quit_still_saves_cache(tmp_path: Path, client: AsyncMock, context: SuggestionContext) -> None:
    cache = TransactionCache(data_dir=str(tmp_path))
    decide, seen = _scripted(ReviewDecision.quit())

    summary = await ReviewSession(CategorizationPipeline(cache=cache), client, context, decide).run()

    assert summary.quit is True
    assert summary.processed == 0
    assert len(seen) == 1
    assert (tmp_path / "cache.json").exists()
    client.categorize_as_expense.assert_not_awaited()


@pytest.mark.anyio
async def test_skip_then_save(tmp_path: Path, client: AsyncMock, context: SuggestionContext) -> None:
    cache = TransactionCache(data_dir=str(tmp_path))
    seen: list[ReviewItem] = []

    async def save_prepared(item: ReviewItem) -> ReviewDecision:
        seen.append(item)
        if item.index == 1:
            return ReviewDecision.skip()
        return ReviewDecision.save(item.prepared.categorized)

    session = ReviewSession(CategorizationPipeline(cache=cache), client, context, save_prepared)
    summary = await session.run(year=2024)

    assert (summary.processed, summary.skipped, summary.failed, summary.quit) == (1, 1, 0, False)
    assert [(item.index, item.total) for item in seen] == [(1, 2), (2, 2)]
    reloaded = TransactionCache(data_dir=str(tmp_path))
    assert reloaded.is_skipped("t1")
    assert reloaded.is_processed("t2")
    client.fetch_uncategorized_transactions.assert_awaited_once_with("acct-1", 2024)


@pytest.mark.anyio
async def test_edited_categorization_is_applied(
    tmp_path: Path, client: AsyncMock, context: SuggestionContext
) -> None:
    client.fetch_uncategorized_transactions.return_value = [_transaction("t1")]
    cache = TransactionCache(data_dir=str(tmp_path))

    async def edit(item: ReviewItem) -> ReviewDecision:
        categorized = item.prepared.categorized
        categorized.selected_type = TransactionType.TRANSFER
        categorized.transfer_to_account_id = "acct-9"
        return ReviewDecision.save(categorized)

    summary = await ReviewSession(CategorizationPipeline(cache=cache), client, context, edit).run()

    assert summary.processed == 1
    request = client.categorize_as_transfer.call_args.args[1]
    assert request.to_account_id == "acct-9"
    client.categorize_as_expense.assert_not_awaited()


@pytest.mark.anyio
async def test_failures_are_counted_and_loop_continues(
    tmp_path: Path, client: AsyncMock, context: SuggestionContext
) -> None:
    cache = TransactionCache(data_dir=str(tmp_path))
    suggester = MagicMock()
    suggester.suggest.side_effect = [RuntimeError("llm down"), TransactionSuggestion(category="Meals")]
    client.categorize_as_expense.side_effect = RuntimeError("zoho down")
    decide = AsyncMock(side_effect=lambda item: ReviewDecision.save(item.prepared.categorized))

    pipeline = CategorizationPipeline(cache=cache, suggester=suggester)
    summary = await ReviewSession(pipeline, client, context, decide).run()

    assert summary.failed == 2
    assert summary.processed == 0
    assert decide.await_count == 1
    assert not cache.is_processed("t2")


@pytest.mark.anyio
async def test_prompt_lists_chart_of_accounts_categories(
    tmp_path: Path, client: AsyncMock, context: SuggestionContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("BOOKKEEPER_CATEGORIES", raising=False)
    client.fetch_accounts.return_value = [
        Account(account_id="1", account_name="Travel", account_type="expense"),
        Account(account_id="2", account_name="Sales", account_type="income"),
        Account(account_id="3", account_name="Meals", account_type="expense"),
    ]
    reply = '{"transaction_type": "expense", "category": "Meals", "confidence": 70}'
    cache = TransactionCache(data_dir=str(tmp_path))

    with patch("zoho_bookkeeper.suggestions.llm.OpenAI") as mock_openai:
        create = mock_openai.return_value.responses.create
        create.return_value = SimpleNamespace(output=[], output_text=reply)
        suggester = LLMSuggester(categories=[], api_key="sk-fake")
        pipeline = CategorizationPipeline(cache=cache, suggester=suggester)
        decide = AsyncMock(return_value=ReviewDecision.skip())

        summary = await ReviewSession(pipeline, client, context, decide).run()

    assert summary.skipped == 2
    assert suggester.categories == ["Meals", "Travel"]
    assert create.call_count == 2
    assert "Available expense categories:\nMeals\nTravel\n" in create.call_args.kwargs["instructions"]
    client.fetch_accounts.assert_awaited_once()
