import asyncio
from collections import Counter
from collections.abc import Iterable
from decimal import Decimal
from typing import NamedTuple, Protocol

from zoho_bookkeeper.domain.transaction_types import TransactionType
from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import BankTransaction, Contact, Expense, TransactionSuggestion

logger = get_logger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")
REFINED_CONFIDENCE = 98


class HistorySource(Protocol):
    async def search_contact_by_name(self, name: str, contact_type: str = "vendor") -> Contact | None: ...

    async def fetch_expenses(self, vendor_id: str) -> list[Expense]: ...


class RefinementResult(NamedTuple):
    suggestion: TransactionSuggestion
    debug_lines: list[str]


def count_occurrences(values: Iterable[str | None]) -> list[tuple[str, int]]:
    """Counts of non-empty values, most frequent first."""
    return Counter(value for value in values if value).most_common()


def _majority(counts: list[tuple[str, int]], total: int) -> str | None:
    if not counts or total <= 0:
        return None
    top_value, top_count = counts[0]
    # strictly more than half: a 2 of 4 tie does not win
    if top_count * 2 > total:
        return top_value
    return None


def amounts_match(first: Decimal, second: Decimal) -> bool:
    return abs(abs(first) - abs(second)) < AMOUNT_TOLERANCE


class HistoryRefiner:
    """
    Overrides category and description with what the user chose before for
    the same vendor.

    Vendor ids and expense histories are memoised for the life of the
    instance, so a vendor that recurs in one session costs one lookup.
    """

    def __init__(self) -> None:
        self._vendor_ids: dict[str, str | None] = {}
        self._expenses: dict[str, list[Expense]] = {}
        self._vendor_lock = asyncio.Lock()
        self._expense_lock = asyncio.Lock()

    def clear(self) -> None:
        self._vendor_ids = {}
        self._expenses = {}

    async def resolve_vendor_id(self, client: HistorySource, vendor_name: str) -> str | None:
        key = vendor_name.strip().lower()
        if key in self._vendor_ids:
            return self._vendor_ids[key]

        async with self._vendor_lock:
            if key in self._vendor_ids:
                return self._vendor_ids[key]
            contact = await client.search_contact_by_name(vendor_name, "vendor")
            vendor_id = contact.contact_id if contact else None
            self._vendor_ids[key] = vendor_id
            return vendor_id

    async def vendor_expenses(self, client: HistorySource, vendor_id: str) -> list[Expense]:
        cached = self._expenses.get(vendor_id)
        if cached is not None:
            return cached

        async with self._expense_lock:
            cached = self._expenses.get(vendor_id)
            if cached is not None:
                return cached
            expenses = list(await client.fetch_expenses(vendor_id))
            self._expenses[vendor_id] = expenses
            return expenses

    async def refine(
        self,
        suggestion: TransactionSuggestion,
        transaction: BankTransaction,
        client: HistorySource,
        bank_account_id: str,
    ) -> RefinementResult:
        debug_lines: list[str] = []
        vendor_name = (suggestion.vendor_name or "").strip()

        if suggestion.transaction_type != TransactionType.EXPENSE or not vendor_name:
            debug_lines.append(
                f"History: skipped ({suggestion.transaction_type.value}, vendor={vendor_name or 'none'})"
            )
            return RefinementResult(suggestion, debug_lines)

        vendor_id = await self.resolve_vendor_id(client, vendor_name)
        if not vendor_id:
            debug_lines.append(f"History: vendor '{vendor_name}' not found")
            return RefinementResult(suggestion, debug_lines)

        expenses = await self.vendor_expenses(client, vendor_id)
        total = len(expenses)
        debug_lines.append(f"History: {total} prior expense(s) for '{vendor_name}' (account {bank_account_id})")
        if not expenses:
            return RefinementResult(suggestion, debug_lines)

        category = suggestion.category
        category_counts = count_occurrences(expense.account_name for expense in expenses)
        for name, count in category_counts:
            debug_lines.append(f"  category '{name}': {count}")
        top_category = _majority(category_counts, total)
        if top_category is not None:
            category = top_category

        description = suggestion.description
        same_amount = [
            expense
            for expense in expenses
            if expense.amount is not None and amounts_match(expense.amount, transaction.amount)
        ]
        debug_lines.append(f"  same amount ({transaction.amount}): {len(same_amount)}")
        description_counts = count_occurrences(expense.description for expense in same_amount)
        for text, count in description_counts:
            debug_lines.append(f"  description '{text}': {count}")
        top_description = _majority(description_counts, len(same_amount))
        if top_description is not None:
            description = top_description

        if category == suggestion.category and description == suggestion.description:
            debug_lines.append("History: no change")
            return RefinementResult(suggestion, debug_lines)

        debug_lines.append(f"History: category='{category}', description='{description}'")
        logger.info(
            "[HISTORY] Refined %s for vendor '%s' from %d prior expense(s)",
            transaction.transaction_id,
            vendor_name,
            total,
        )
        refined = suggestion.model_copy(update={
            "category": category,
            "description": description,
            "confidence": REFINED_CONFIDENCE,
            "reasoning": f"{suggestion.reasoning} [Refined by history: {total} prior expense(s)]",
        })
        return RefinementResult(refined, debug_lines)
