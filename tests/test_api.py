from collections.abc import Generator, Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from zoho_bookkeeper.app import app
from zoho_bookkeeper.domain.transaction_types import TransactionType
from zoho_bookkeeper.integration.zoho import ZohoBooksError
from zoho_bookkeeper.models import (
    Account,
    BankAccount,
    BankTransaction,
    CategorizedTransaction,
    Contact,
    TransactionSuggestion,
)
from zoho_bookkeeper.services.categorization import CategorizationPipeline
from zoho_bookkeeper.storage.cache import TransactionCache
from zoho_bookkeeper.suggestions.vendors import VendorMatcher

client = TestClient(app)


def _transaction(transaction_id: str = "t1") -> BankTransaction:
    return BankTransaction(
        transaction_id=transaction_id,
        date=date(2024, 3, 10),
        amount=Decimal("42.50"),
        is_debit=True,
        description="ZOOM.US 888-799",
        account_id="acct-1",
    )


@contextmanager
def _app_state(name: str, value: object) -> Iterator[None]:
    had_value = hasattr(app.state, name)
    original = getattr(app.state, name, None)
    setattr(app.state, name, value)
    try:
        yield
    finally:
        if had_value:
            setattr(app.state, name, original)
        else:
            delattr(app.state, name)


@pytest.fixture
def mock_zoho() -> Generator[AsyncMock, None, None]:
    mock = AsyncMock()
    mock.fetch_bank_accounts.return_value = [
        BankAccount(account_id="acct-1", account_name="Checking"),
        BankAccount(account_id="acct-2", account_name="Amex", account_type="credit_card"),
    ]
    mock.fetch_uncategorized_transactions.return_value = [_transaction("t1"), _transaction("t2")]
    mock.fetch_contacts.return_value = [Contact(contact_id="v1", contact_name="Zoom")]
    mock.search_contact_by_name.return_value = None
    mock.get_or_create_vendor.return_value = Contact(contact_id="v1", contact_name="Zoom")
    mock.search_account_by_name.return_value = Account(account_id="c1", account_name="Software")
    with _app_state("zoho", mock):
        yield mock


@pytest.fixture
def cache(tmp_path: Path) -> Generator[TransactionCache, None, None]:
    cache = TransactionCache(data_dir=str(tmp_path))
    with _app_state("cache", cache):
        yield cache


@pytest.fixture
def pipeline(cache: TransactionCache) -> Generator[CategorizationPipeline, None, None]:
    pipeline = CategorizationPipeline(cache=cache, vendor_matcher=VendorMatcher(threshold=90))
    with _app_state("pipeline", pipeline):
        yield pipeline


def test_list_accounts_with_pending_counts(
    mock_zoho: AsyncMock, cache: TransactionCache, pipeline: CategorizationPipeline
) -> None:
    cache.mark_processed("t1")

    response = client.get("/api/accounts")

    assert response.status_code == 200
    data = response.json()
    assert [item["account"]["account_id"] for item in data] == ["acct-1", "acct-2"]
    assert [item["pending"] for item in data] == [1, 1]


def test_list_accounts_upstream_error(mock_zoho: AsyncMock, pipeline: CategorizationPipeline) -> None:
    mock_zoho.fetch_bank_accounts.side_effect = ZohoBooksError("invalid token", code=57)

    response = client.get("/api/accounts")

    assert response.status_code == 502
    assert "invalid token" in response.json()["detail"]


def test_list_candidates(mock_zoho: AsyncMock, cache: TransactionCache, pipeline: CategorizationPipeline) -> None:
    cache.mark_skipped("t2")

    response = client.get("/api/accounts/acct-1/transactions", params={"year": 2024})

    assert response.status_code == 200
    data = response.json()
    assert data["account_id"] == "acct-1"
    assert [tx["transaction_id"] for tx in data["transactions"]] == ["t1"]
    mock_zoho.fetch_uncategorized_transactions.assert_awaited_once_with("acct-1", 2024)


def test_suggest(mock_zoho: AsyncMock, pipeline: CategorizationPipeline) -> None:
    response = client.post("/api/accounts/acct-1/transactions/t1/suggest")

    assert response.status_code == 200
    data = response.json()
    assert data["categorized"]["transaction"]["transaction_id"] == "t1"
    assert data["categorized"]["category"] == "Uncategorized"
    assert data["categorized"]["suggestion"]["reasoning"] == "AI service not configured"
    assert data["available_types"] == ["expense", "transfer_fund", "refund", "skip"]
    assert data["debug_lines"][0].startswith("History: skipped")


def test_suggest_unknown_transaction(mock_zoho: AsyncMock, pipeline: CategorizationPipeline) -> None:
    response = client.post("/api/accounts/acct-1/transactions/nope/suggest")
    assert response.status_code == 404


def test_save_expense(mock_zoho: AsyncMock, cache: TransactionCache, pipeline: CategorizationPipeline) -> None:
    categorized = CategorizedTransaction.from_suggestion(
        _transaction("t1"),
        TransactionSuggestion(transaction_type=TransactionType.EXPENSE, vendor_name="Zoom", category="Software"),
    )

    response = client.post(
        "/api/transactions/save",
        json={"categorized": categorized.model_dump(mode="json")},
    )

    assert response.status_code == 200
    assert response.json() == {"transaction_id": "t1", "status": "processed"}
    mock_zoho.categorize_as_expense.assert_awaited_once()
    reloaded = TransactionCache(data_dir=str(Path(cache.data_path).parent))
    assert reloaded.is_processed("t1")
    assert reloaded.get_known_vendors() == ["Zoom"]


def test_save_upstream_error(mock_zoho: AsyncMock, cache: TransactionCache, pipeline: CategorizationPipeline) -> None:
    mock_zoho.categorize_as_expense.side_effect = ZohoBooksError("Account is locked")
    categorized = CategorizedTransaction.from_suggestion(_transaction("t1"), TransactionSuggestion())

    response = client.post(
        "/api/transactions/save",
        json={"categorized": categorized.model_dump(mode="json")},
    )

    assert response.status_code == 502
    assert "Account is locked" in response.json()["detail"]
    assert not cache.is_processed("t1")


def test_skip(cache: TransactionCache, pipeline: CategorizationPipeline) -> None:
    response = client.post("/api/transactions/t9/skip")

    assert response.status_code == 200
    assert response.json() == {"transaction_id": "t9", "status": "skipped"}
    assert cache.is_skipped("t9")
    assert Path(cache.data_path).exists()


def test_cache_stats(cache: TransactionCache, pipeline: CategorizationPipeline) -> None:
    cache.mark_processed("t1")
    cache.mark_skipped("t2")
    cache.add_vendor("Zoom")

    response = client.get("/api/cache/stats")

    assert response.json() == {"processed": 1, "skipped": 1, "vendors": 1}
