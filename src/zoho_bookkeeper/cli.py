"""
Terminal front end for the review loop.

``zoho-bookkeeper-cli accounts`` lists bank accounts with the number of
transactions still awaiting review; ``zoho-bookkeeper-cli review ACCOUNT_ID``
walks those transactions one at a time.
"""

import asyncio
from collections.abc import Callable, Sequence
from typing import Annotated, Any, Optional

import httpx
import typer

from zoho_bookkeeper.core import settings
from zoho_bookkeeper.domain.transaction_types import TransactionType, display_name
from zoho_bookkeeper.integration.zoho import ZohoBooksClient, ZohoBooksError
from zoho_bookkeeper.logger import get_logger, setup_logging
from zoho_bookkeeper.models import BankAccount, CategorizedTransaction
from zoho_bookkeeper.services.categorization import SuggestionContext, build_pipeline
from zoho_bookkeeper.services.review import ReviewDecision, ReviewItem, ReviewSession, ReviewSummary
from zoho_bookkeeper.services.zoho_data import fetch_vendor_names, pending_counts
from zoho_bookkeeper.storage.cache import TransactionCache

logger = get_logger(__name__)

ACTION_PROMPT = "[s]ave, [k] skip, [q]uit, edit [t]ype/[v]endor/[c]ategory/[d]escription"

cli = typer.Typer(help="Review uncategorized Zoho Books bank transactions.", no_args_is_help=True)


class TerminalReviewer:
    """``decide`` callback for ``ReviewSession`` that asks on the terminal."""

    def __init__(
        self,
        bank_accounts: Sequence[BankAccount],
        prompt: Callable[..., Any] = typer.prompt,
        echo: Callable[..., Any] = typer.echo,
    ):
        self.bank_accounts = list(bank_accounts)
        self.prompt = prompt
        self.echo = echo

    async def __call__(self, item: ReviewItem) -> ReviewDecision:
        # prompts block, keep them off the event loop
        return await asyncio.to_thread(self.review, item)

    def review(self, item: ReviewItem) -> ReviewDecision:
        prepared = item.prepared
        categorized = prepared.categorized.model_copy(deep=True)
        if prepared.transfer_account is not None and not categorized.transfer_to_account_id:
            categorized.transfer_to_account_id = prepared.transfer_account.account_id

        self._show_item(item)
        while True:
            self._show_selection(categorized)
            choice = str(self.prompt(ACTION_PROMPT, default="s")).strip().lower()
            if choice == "s":
                return ReviewDecision.save(categorized)
            if choice == "k":
                return ReviewDecision.skip()
            if choice == "q":
                return ReviewDecision.quit()
            if choice == "t":
                self._choose_type(categorized, prepared.available_types)
            elif choice == "v":
                categorized.vendor_name = str(self.prompt("Vendor", default=categorized.vendor_name)).strip()
            elif choice == "c":
                categorized.category = str(self.prompt("Category", default=categorized.category)).strip()
            elif choice == "d":
                categorized.description = str(
                    self.prompt("Description", default=categorized.description)
                ).strip()
            else:
                self.echo(f"Unknown choice '{choice}'")

    def _show_item(self, item: ReviewItem) -> None:
        tx = item.prepared.categorized.transaction
        suggestion = item.prepared.categorized.suggestion
        self.echo("")
        self.echo(f"[{item.index}/{item.total}] {tx.date.isoformat()}  {tx.display_amount}  {tx.display_description}")
        self.echo(
            f"  Suggested: {display_name(suggestion.transaction_type)} "
            f"(confidence {suggestion.confidence}) {suggestion.reasoning}"
        )
        for line in item.prepared.debug_lines:
            self.echo(f"  {line}")

    def _show_selection(self, categorized: CategorizedTransaction) -> None:
        parts = [display_name(categorized.selected_type)]
        if categorized.selected_type == TransactionType.EXPENSE:
            parts.append(f"vendor '{categorized.vendor_name or '-'}'")
            parts.append(f"category '{categorized.category}'")
        elif categorized.selected_type == TransactionType.TRANSFER:
            parts.append(f"to '{self._account_name(categorized.transfer_to_account_id)}'")
        parts.append(f"description '{categorized.description}'")
        self.echo("  -> " + ", ".join(parts))

    def _account_name(self, account_id: str | None) -> str:
        for account in self.bank_accounts:
            if account.account_id == account_id:
                return account.account_name
        return account_id or "-"

    def _pick(self, label: str, options: Sequence[str]) -> int | None:
        for number, option in enumerate(options, start=1):
            self.echo(f"  {number}. {option}")
        raw = str(self.prompt(label)).strip()
        if raw.isdigit() and 1 <= int(raw) <= len(options):
            return int(raw) - 1
        self.echo(f"Invalid choice '{raw}'")
        return None

    def _choose_type(self, categorized: CategorizedTransaction, types: Sequence[TransactionType]) -> None:
        index = self._pick("Type", [display_name(kind) for kind in types])
        if index is None:
            return
        categorized.selected_type = types[index]
        if categorized.selected_type != TransactionType.TRANSFER:
            return

        targets = [
            account
            for account in self.bank_accounts
            if account.account_id != categorized.transaction.account_id
        ]
        if not targets:
            self.echo("No other bank account to transfer to")
            return
        target = self._pick("Transfer to", [account.account_name for account in targets])
        if target is not None:
            categorized.transfer_to_account_id = targets[target].account_id


def _zoho_client() -> ZohoBooksClient:
    zoho = ZohoBooksClient()
    if not zoho.is_configured:
        typer.echo("ZOHO_ORGANIZATION_ID and ZOHO_ACCESS_TOKEN must be set.", err=True)
        raise typer.Exit(code=1)
    return zoho


def _open_cache() -> TransactionCache:
    return TransactionCache(data_dir=settings.DATA_DIR, filename=settings.CACHE_FILENAME)


async def _list_accounts() -> None:
    zoho = _zoho_client()
    try:
        accounts = await zoho.fetch_bank_accounts()
        counts = await pending_counts(zoho, _open_cache(), accounts)
    except (httpx.HTTPError, ZohoBooksError) as exc:
        logger.error("[CLI] Zoho Books request failed: %s", exc)
        raise typer.Exit(code=1) from exc
    finally:
        await zoho.aclose()

    for account in accounts:
        typer.echo(
            f"{account.account_id}  {account.account_name} ({account.account_type}): "
            f"{counts.get(account.account_id, 0)} pending"
        )


async def _review(account_id: str, year: int | None) -> ReviewSummary:
    zoho = _zoho_client()
    pipeline = build_pipeline(_open_cache())
    try:
        bank_accounts = await zoho.fetch_bank_accounts()
        if not any(account.account_id == account_id for account in bank_accounts):
            typer.echo(f"Unknown bank account '{account_id}'", err=True)
            raise typer.Exit(code=1)
        vendors = await fetch_vendor_names(zoho)
        context = SuggestionContext.for_account(account_id, bank_accounts, vendors)
        session = ReviewSession(pipeline, zoho, context, TerminalReviewer(bank_accounts))
        return await session.run(year)
    except (httpx.HTTPError, ZohoBooksError) as exc:
        logger.error("[CLI] Zoho Books request failed: %s", exc)
        raise typer.Exit(code=1) from exc
    finally:
        await zoho.aclose()


@cli.command("accounts")
def accounts_command() -> None:
    """List bank accounts with the number of transactions awaiting review."""
    setup_logging()
    asyncio.run(_list_accounts())


@cli.command("review")
def review_command(
    account_id: Annotated[str, typer.Argument(help="Zoho bank account id")],
    year: Annotated[Optional[int], typer.Option("--year", help="Only transactions dated in this year")] = None,
) -> None:
    """Review uncategorized transactions of one bank account."""
    setup_logging()
    summary = asyncio.run(_review(account_id, year))
    typer.echo(
        f"Processed: {summary.processed}, Skipped: {summary.skipped}, Failed: {summary.failed}"
        + (" (quit early)" if summary.quit else "")
    )


if __name__ == "__main__":
    cli()
