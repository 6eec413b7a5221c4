from zoho_bookkeeper.core import settings
from zoho_bookkeeper.integration.zoho import ZohoBooksClient
from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import BankAccount
from zoho_bookkeeper.storage.cache import TransactionCache

logger = get_logger(__name__)


async def fetch_expense_categories(client: ZohoBooksClient) -> list[str]:
    accounts = await client.fetch_accounts()
    categories = sorted(
        account.account_name
        for account in accounts
        if (account.account_type or "").lower() == "expense" and account.account_name
    )
    logger.debug("[CATEGORIES] %d expense categories from chart of accounts", len(categories))
    return categories


async def resolve_categories(client: ZohoBooksClient) -> list[str]:
    """Configured categories win; otherwise every expense account in the ledger."""
    configured = settings.get_env_list("BOOKKEEPER_CATEGORIES")
    if configured:
        return configured
    return await fetch_expense_categories(client)


async def fetch_vendor_names(client: ZohoBooksClient) -> list[str]:
    contacts = await client.fetch_contacts("vendor")
    return [contact.contact_name for contact in contacts if contact.contact_name]


async def pending_counts(
    client: ZohoBooksClient,
    cache: TransactionCache,
    bank_accounts: list[BankAccount] | None = None,
) -> dict[str, int]:
    """Unreviewed transaction count per bank account id."""
    if bank_accounts is None:
        bank_accounts = await client.fetch_bank_accounts()
    counts: dict[str, int] = {}
    for account in bank_accounts:
        transactions = await client.fetch_uncategorized_transactions(account.account_id)
        counts[account.account_id] = sum(
            1
            for tx in transactions
            if not cache.is_processed(tx.transaction_id) and not cache.is_skipped(tx.transaction_id)
        )
    return counts
