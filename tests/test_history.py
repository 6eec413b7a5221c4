from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from zoho_bookkeeper.domain.transaction_types import TransactionType
from zoho_bookkeeper.models import BankTransaction, Contact, Expense, TransactionSuggestion
from zoho_bookkeeper.suggestions.history import HistoryRefiner, amounts_match, count_occurrences


def _transaction(amount: str = "19.99") -> BankTransaction:
    return BankTransaction(
        transaction_id="tx-1",
        date=date(2024, 5, 2),
        amount=Decimal(amount),
        is_debit=True,
        description="AMZN Mktp US",
        account_id="acct-1",
    )


def _suggestion(**overrides: object) -> TransactionSuggestion:
    values: dict[str, object] = {
        "transaction_type": TransactionType.EXPENSE,
        "vendor_name": "Amazon",
        "category": "Office Supplies",
        "description": "Supplies",
        "confidence": 60,
        "reasoning": "retailer",
    }
    values.update(overrides)
    return TransactionSuggestion(**values)


def _expense(category: str, amount: str = "5.00", description: str | None = None) -> Expense:
    return Expense(account_name=category, amount=Decimal(amount), description=description)


def _client(expenses: list[Expense], contact: Contact | None = None) -> AsyncMock:
    client = AsyncMock()
    client.search_contact_by_name.return_value = (
        contact if contact is not None else Contact(contact_id="v-1", contact_name="Amazon")
    )
    client.fetch_expenses.return_value = expenses
    return client


@pytest.mark.anyio
async def test_majority_category_overrides() -> None:
    client = _client([_expense("Software")] * 3)

    refined, debug_lines = await HistoryRefiner().refine(_suggestion(), _transaction(), client, "acct-1")

    assert refined.category == "Software"
    assert refined.confidence == 98
    assert refined.reasoning == "retailer [Refined by history: 3 prior expense(s)]"
    assert refined.description == "Supplies"
    assert any("3 prior expense(s)" in line for line in debug_lines)
    client.search_contact_by_name.assert_awaited_once_with("Amazon", "vendor")
    client.fetch_expenses.assert_awaited_once_with("v-1")


@pytest.mark.anyio
async def test_three_to_one_wins() -> None:
    client = _client([_expense("Software")] * 3 + [_expense("Office Supplies")])

    refined, _ = await HistoryRefiner().refine(_suggestion(), _transaction(), client, "acct-1")

    assert refined.category == "Software"


@pytest.mark.anyio
async def test_even_split_does_not_override() -> None:
    suggestion = _suggestion(category="Meals")
    client = _client([_expense("Software")] * 2 + [_expense("Office Supplies")] * 2)

    refined, debug_lines = await HistoryRefiner().refine(suggestion, _transaction(), client, "acct-1")

    assert refined == suggestion
    assert debug_lines[-1] == "History: no change"


@pytest.mark.anyio
async def test_description_majority_only_counts_same_amount() -> None:
    expenses = [
        _expense("Software", "19.99", "Kindle subscription"),
        _expense("Software", "19.99", "Kindle subscription"),
        _expense("Software", "19.99", "Other"),
        _expense("Software", "250.00", "Monitor"),
        _expense("Software", "250.00", "Monitor"),
        _expense("Software", "250.00", "Monitor"),
    ]
    client = _client(expenses)

    refined, debug_lines = await HistoryRefiner().refine(_suggestion(), _transaction("19.99"), client, "acct-1")

    assert refined.description == "Kindle subscription"
    assert "  same amount (19.99): 3" in debug_lines


@pytest.mark.anyio
async def test_description_kept_when_no_same_amount_history() -> None:
    client = _client([_expense("Office Supplies", "7.00", "Pens")] * 3)
    suggestion = _suggestion(category="Office Supplies")

    refined, _ = await HistoryRefiner().refine(suggestion, _transaction("19.99"), client, "acct-1")

    assert refined == suggestion


@pytest.mark.anyio
async def test_non_expense_is_skipped() -> None:
    client = _client([_expense("Software")] * 3)
    suggestion = _suggestion(transaction_type=TransactionType.TRANSFER)

    refined, debug_lines = await HistoryRefiner().refine(suggestion, _transaction(), client, "acct-1")

    assert refined == suggestion
    assert debug_lines[0].startswith("History: skipped")
    client.search_contact_by_name.assert_not_awaited()


@pytest.mark.anyio
async def test_missing_vendor_name_is_skipped() -> None:
    client = _client([])
    suggestion = _suggestion(vendor_name="  ")

    refined, _ = await HistoryRefiner().refine(suggestion, _transaction(), client, "acct-1")

    assert refined == suggestion
    client.search_contact_by_name.assert_not_awaited()


@pytest.mark.anyio
async def test_unknown_vendor_is_looked_up_once() -> None:
    client = AsyncMock()
    client.search_contact_by_name.return_value = None
    refiner = HistoryRefiner()

    for _ in range(3):
        refined, debug_lines = await refiner.refine(_suggestion(), _transaction(), client, "acct-1")
        assert refined.category == "Office Supplies"
        assert debug_lines == ["History: vendor 'Amazon' not found"]

    client.search_contact_by_name.assert_awaited_once()
    client.fetch_expenses.assert_not_awaited()


@pytest.mark.anyio
async def test_vendor_history_is_memoised_case_insensitively() -> None:
    client = _client([_expense("Software")] * 3)
    refiner = HistoryRefiner()

    await refiner.refine(_suggestion(vendor_name="Amazon"), _transaction(), client, "acct-1")
    await refiner.refine(_suggestion(vendor_name="amazon "), _transaction(), client, "acct-1")

    client.search_contact_by_name.assert_awaited_once()
    client.fetch_expenses.assert_awaited_once()

    refiner.clear()
    await refiner.refine(_suggestion(), _transaction(), client, "acct-1")
    assert client.search_contact_by_name.await_count == 2


@pytest.mark.anyio
async def test_lookup_errors_propagate() -> None:
    client = AsyncMock()
    client.search_contact_by_name.side_effect = RuntimeError("zoho down")

    with pytest.raises(RuntimeError):
        await HistoryRefiner().refine(_suggestion(), _transaction(), client, "acct-1")


def test_count_occurrences_ignores_blanks() -> None:
    assert count_occurrences(["a", None, "b", "", "a"]) == [("a", 2), ("b", 1)]


def test_amounts_match_tolerance() -> None:
    assert amounts_match(Decimal("250.00"), Decimal("250.00"))
    assert amounts_match(Decimal("250.00"), Decimal("250.009"))
    assert not amounts_match(Decimal("250.00"), Decimal("250.01"))
