from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import CategorizedTransaction
from zoho_bookkeeper.services.categorization import (
    AccountingClient,
    CategorizationPipeline,
    PreparedTransaction,
    SuggestionContext,
)

logger = get_logger(__name__)


class ReviewAction(str, Enum):
    SAVE = "save"
    SKIP = "skip"
    QUIT = "quit"


@dataclass
class ReviewDecision:
    action: ReviewAction
    categorized: CategorizedTransaction | None = None

    @classmethod
    def save(cls, categorized: CategorizedTransaction) -> "ReviewDecision":
        return cls(ReviewAction.SAVE, categorized)

    @classmethod
    def skip(cls) -> "ReviewDecision":
        return cls(ReviewAction.SKIP)

    @classmethod
    def quit(cls) -> "ReviewDecision":
        return cls(ReviewAction.QUIT)


@dataclass
class ReviewItem:
    index: int
    total: int
    prepared: PreparedTransaction


@dataclass
class ReviewSummary:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    quit: bool = False


Decider = Callable[[ReviewItem], Awaitable[ReviewDecision]]


class ReviewSession:
    """
    Walks the unreviewed transactions of one account, one at a time, asking
    ``decide`` what to do with each.

    The cache is saved before ``run`` returns, including on quit and when an
    exception escapes the loop.
    """

    def __init__(
        self,
        pipeline: CategorizationPipeline,
        client: AccountingClient,
        context: SuggestionContext,
        decide: Decider,
    ):
        self.pipeline = pipeline
        self.client = client
        self.context = context
        self.decide = decide

    async def run(self, year: int | None = None) -> ReviewSummary:
        summary = ReviewSummary()
        try:
            candidates = await self.pipeline.load_candidates(self.client, self.context.account_id, year)
            total = len(candidates)
            for index, transaction in enumerate(candidates, start=1):
                try:
                    prepared = await self.pipeline.prepare(transaction, self.context, self.client)
                except Exception as exc:
                    logger.error(
                        "[REVIEW] [%d/%d] Could not prepare %s: %s",
                        index,
                        total,
                        transaction.transaction_id,
                        exc,
                    )
                    summary.failed += 1
                    continue

                decision = await self.decide(ReviewItem(index=index, total=total, prepared=prepared))

                if decision.action == ReviewAction.QUIT:
                    summary.quit = True
                    logger.info("[REVIEW] Quit requested at %d/%d", index, total)
                    break

                if decision.action == ReviewAction.SKIP:
                    self.pipeline.cache.mark_skipped(transaction.transaction_id)
                    summary.skipped += 1
                    continue

                categorized = decision.categorized or prepared.categorized
                if await self.pipeline.apply(categorized, self.client):
                    summary.processed += 1
                else:
                    summary.failed += 1
        finally:
            self.pipeline.cache.save()

        logger.info(
            "[REVIEW] Processed: %d, Skipped: %d, Failed: %d",
            summary.processed,
            summary.skipped,
            summary.failed,
        )
        return summary
