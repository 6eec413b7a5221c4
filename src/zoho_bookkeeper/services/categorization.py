import asyncio
from dataclasses import dataclass, field
from typing import Protocol

from zoho_bookkeeper.core import settings
from zoho_bookkeeper.domain.transaction_types import TransactionType, available_types
from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import (
    Account,
    BankAccount,
    BankTransaction,
    CategorizedTransaction,
    Contact,
    Expense,
    ExpenseCategorization,
    OwnerContributionCategorization,
    SaleCategorization,
    TransactionSuggestion,
    TransferCategorization,
    default_suggestion,
)
from zoho_bookkeeper.services.transfers import TransferDetector
from zoho_bookkeeper.services.zoho_data import resolve_categories
from zoho_bookkeeper.storage.cache import TransactionCache
from zoho_bookkeeper.suggestions.history import HistoryRefiner, RefinementResult
from zoho_bookkeeper.suggestions.llm import LLMSuggester, build_suggester
from zoho_bookkeeper.suggestions.vendors import VendorMatcher

logger = get_logger(__name__)

OWNER_EQUITY_ACCOUNT = "Owner's Equity"
SALES_ACCOUNT = "Sales"
NOT_CONFIGURED_REASONING = "AI service not configured"


class AccountingClient(Protocol):
    async def fetch_accounts(self) -> list[Account]: ...

    async def fetch_uncategorized_transactions(
        self, account_id: str, year: int | None = None
    ) -> list[BankTransaction]: ...

    async def search_contact_by_name(self, name: str, contact_type: str = "vendor") -> Contact | None: ...

    async def get_or_create_vendor(self, name: str) -> Contact: ...

    async def search_account_by_name(self, name: str) -> Account | None: ...

    async def fetch_expenses(self, vendor_id: str) -> list[Expense]: ...

    async def categorize_as_expense(self, transaction_id: str, request: ExpenseCategorization) -> None: ...

    async def categorize_as_transfer(self, transaction_id: str, request: TransferCategorization) -> None: ...

    async def categorize_as_owner_contribution(
        self, transaction_id: str, request: OwnerContributionCategorization
    ) -> None: ...

    async def categorize_as_sale(self, transaction_id: str, request: SaleCategorization) -> None: ...


@dataclass
class SuggestionContext:
    """Per-account inputs shared by every transaction in a review run."""

    account_id: str
    bank_accounts: list[BankAccount]
    existing_vendors: list[str] = field(default_factory=list)
    account_type: str = "bank"

    @classmethod
    def for_account(
        cls,
        account_id: str,
        bank_accounts: list[BankAccount],
        existing_vendors: list[str] | None = None,
    ) -> "SuggestionContext":
        account = next((acct for acct in bank_accounts if acct.account_id == account_id), None)
        return cls(
            account_id=account_id,
            bank_accounts=bank_accounts,
            existing_vendors=list(existing_vendors or []),
            account_type=account.account_type if account else "bank",
        )


@dataclass
class PreparedTransaction:
    categorized: CategorizedTransaction
    debug_lines: list[str]
    available_types: list[TransactionType]
    transfer_account: BankAccount | None = None


class CategorizationPipeline:
    def __init__(
        self,
        cache: TransactionCache,
        suggester: LLMSuggester | None = None,
        refiner: HistoryRefiner | None = None,
        vendor_matcher: VendorMatcher | None = None,
        dry_run: bool = False,
    ) -> None:
        self.cache = cache
        self.suggester = suggester
        self.refiner = refiner or HistoryRefiner()
        self.vendor_matcher = vendor_matcher or VendorMatcher()
        self.dry_run = dry_run

    async def load_candidates(
        self,
        client: AccountingClient,
        account_id: str,
        year: int | None = None,
    ) -> list[BankTransaction]:
        transactions = await client.fetch_uncategorized_transactions(account_id, year)
        candidates = [
            tx
            for tx in transactions
            if not self.cache.is_processed(tx.transaction_id)
            and not self.cache.is_skipped(tx.transaction_id)
        ]
        logger.info(
            "[CANDIDATES] %d of %d uncategorized transaction(s) still to review in %s",
            len(candidates),
            len(transactions),
            account_id,
        )
        return candidates

    async def ensure_categories(self, client: AccountingClient) -> None:
        """Fill an empty suggester category list from the chart of accounts."""
        suggester = self.suggester
        if suggester is None or suggester.categories:
            return
        suggester.categories = await resolve_categories(client)
        logger.info("[SUGGEST] Using %d expense categories", len(suggester.categories))

    async def suggest(
        self,
        transaction: BankTransaction,
        bank_accounts: list[BankAccount],
        existing_vendors: list[str],
        account_type: str = "bank",
    ) -> TransactionSuggestion:
        if self.suggester is None:
            logger.warning("[SUGGEST] No LLM configured; using placeholder suggestion.")
            return default_suggestion(NOT_CONFIGURED_REASONING)

        suggestion = await asyncio.to_thread(
            self.suggester.suggest,
            transaction,
            bank_accounts,
            existing_vendors,
            account_type,
        )
        known_vendors = list(dict.fromkeys([*existing_vendors, *self.cache.get_known_vendors()]))
        return self.vendor_matcher.apply(suggestion, known_vendors)

    async def refine(
        self,
        suggestion: TransactionSuggestion,
        transaction: BankTransaction,
        client: AccountingClient,
        bank_account_id: str,
    ) -> RefinementResult:
        return await self.refiner.refine(suggestion, transaction, client, bank_account_id)

    async def prepare(
        self,
        transaction: BankTransaction,
        context: SuggestionContext,
        client: AccountingClient,
    ) -> PreparedTransaction:
        """Suggest, refine against history and wrap the result for editing."""
        await self.ensure_categories(client)
        suggestion = await self.suggest(
            transaction,
            context.bank_accounts,
            context.existing_vendors,
            context.account_type,
        )
        refined, debug_lines = await self.refine(suggestion, transaction, client, context.account_id)
        transfer_account = TransferDetector(context.bank_accounts).detect_transfer(transaction)
        if transfer_account is not None:
            debug_lines.append(f"Transfer: possible transfer to '{transfer_account.account_name}'")
        return PreparedTransaction(
            categorized=CategorizedTransaction.from_suggestion(transaction, refined),
            debug_lines=debug_lines,
            available_types=available_types(transaction.is_debit, context.account_type),
            transfer_account=transfer_account,
        )

    async def apply_or_raise(self, categorized: CategorizedTransaction, client: AccountingClient) -> None:
        """Write the categorization to Zoho and mark the transaction processed."""
        tx = categorized.transaction
        if self.dry_run:
            logger.info(
                "[APPLY] Dry run: %s as %s not sent",
                tx.transaction_id,
                categorized.selected_type.value,
            )
        else:
            await self._dispatch(categorized, client)
        self.cache.mark_processed(tx.transaction_id)

    async def apply(self, categorized: CategorizedTransaction, client: AccountingClient) -> bool:
        try:
            await self.apply_or_raise(categorized, client)
        except Exception as exc:
            logger.error("[APPLY] Failed to categorize %s: %s", categorized.transaction.transaction_id, exc)
            return False
        return True

    async def _dispatch(self, categorized: CategorizedTransaction, client: AccountingClient) -> None:
        tx = categorized.transaction
        selected = categorized.selected_type
        description = categorized.description or None

        if selected == TransactionType.EXPENSE:
            vendor_id = None
            vendor_name = categorized.vendor_name.strip()
            if vendor_name:
                vendor = await client.get_or_create_vendor(vendor_name)
                vendor_id = vendor.contact_id
            category_account = await client.search_account_by_name(categorized.category)
            if category_account is None:
                logger.warning("[APPLY] Category account '%s' not found", categorized.category)
            request = ExpenseCategorization(
                account_id=category_account.account_id if category_account else "",
                vendor_id=vendor_id,
                paid_through_account_id=tx.account_id,
                description=description,
                date=tx.date,
                amount=tx.amount,
            )
            logger.info(
                "[APPLY] %s as expense: %s, vendor: %s",
                tx.transaction_id,
                categorized.category,
                vendor_name or "-",
            )
            await client.categorize_as_expense(tx.transaction_id, request)
            if vendor_name:
                self.cache.add_vendor(vendor_name)

        elif selected == TransactionType.TRANSFER:
            request = TransferCategorization(
                to_account_id=categorized.transfer_to_account_id,
                amount=tx.amount,
                description=description,
                date=tx.date,
            )
            logger.info("[APPLY] %s as transfer to %s", tx.transaction_id, categorized.transfer_to_account_id)
            await client.categorize_as_transfer(tx.transaction_id, request)

        elif selected == TransactionType.OWNER_CONTRIBUTION:
            equity_account = await client.search_account_by_name(OWNER_EQUITY_ACCOUNT)
            request = OwnerContributionCategorization(
                account_id=equity_account.account_id if equity_account else "",
                description=description,
                date=tx.date,
                amount=tx.amount,
            )
            logger.info("[APPLY] %s as owner contribution", tx.transaction_id)
            await client.categorize_as_owner_contribution(tx.transaction_id, request)

        elif selected == TransactionType.SALE:
            sales_account = await client.search_account_by_name(SALES_ACCOUNT)
            request = SaleCategorization(
                account_id=sales_account.account_id if sales_account else "",
                description=description,
                date=tx.date,
                amount=tx.amount,
            )
            logger.info("[APPLY] %s as sale", tx.transaction_id)
            await client.categorize_as_sale(tx.transaction_id, request)

        else:
            # refund and skip are recorded locally only
            logger.info("[APPLY] %s marked %s without categorizing", tx.transaction_id, selected.value)


def build_pipeline(cache: TransactionCache) -> CategorizationPipeline:
    """Pipeline wired from the environment, shared by the API and the CLI."""
    return CategorizationPipeline(
        cache=cache,
        suggester=build_suggester(),
        refiner=HistoryRefiner(),
        vendor_matcher=VendorMatcher(),
        dry_run=settings.get_env_bool("DRY_RUN"),
    )
