import re
from collections.abc import Sequence
from datetime import timedelta
from decimal import Decimal

from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import BankAccount, BankTransaction

logger = get_logger(__name__)

TRANSFER_KEYWORDS = ("transfer", "xfer", "ach transfer", "wire transfer", "internal transfer")
MIN_TOKEN_LENGTH = 3
AMOUNT_TOLERANCE = Decimal("0.01")
DATE_WINDOW = timedelta(days=1)

_TOKEN_SPLIT = re.compile(r"[^0-9a-z]+")


def extract_keywords(text: str) -> list[str]:
    return [word for word in _TOKEN_SPLIT.split(text.lower()) if len(word) >= MIN_TOKEN_LENGTH]


def has_transfer_keyword(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in TRANSFER_KEYWORDS)


class TransferDetector:
    """Heuristics that flag likely inter-account transfers for manual review."""

    def __init__(self, bank_accounts: Sequence[BankAccount] = ()):
        self.bank_accounts = list(bank_accounts)

    def detect_transfer(
        self,
        transaction: BankTransaction,
        candidate_accounts: Sequence[BankAccount] | None = None,
    ) -> BankAccount | None:
        accounts = self.bank_accounts if candidate_accounts is None else candidate_accounts
        combined = f"{transaction.description or ''} {transaction.payee or ''}".lower()

        if has_transfer_keyword(combined):
            logger.debug("[TRANSFER] Transfer keyword detected in: %s", combined)

        for account in accounts:
            if account.account_id == transaction.account_id:
                continue

            for word in extract_keywords(account.account_name):
                if word in combined:
                    logger.debug(
                        "[TRANSFER] Matched account '%s' via keyword '%s'",
                        account.account_name,
                        word,
                    )
                    return account

            bank_name = (account.bank_name or "").lower()
            if len(bank_name) >= MIN_TOKEN_LENGTH and bank_name in combined:
                logger.debug(
                    "[TRANSFER] Matched account '%s' via bank name '%s'",
                    account.account_name,
                    bank_name,
                )
                return account

        return None

    def find_matching_transaction(
        self,
        transaction: BankTransaction,
        other_transactions: Sequence[BankTransaction],
    ) -> BankTransaction | None:
        """
        First transaction from another account with the opposite direction,
        the same amount (within one cent) and a date at most one day away.

        Candidates are taken in input order; the closest date is not preferred.
        """
        earliest = transaction.date - DATE_WINDOW
        latest = transaction.date + DATE_WINDOW

        for other in other_transactions:
            if other.account_id == transaction.account_id:
                continue
            if abs(other.amount - transaction.amount) >= AMOUNT_TOLERANCE:
                continue
            if not earliest <= other.date <= latest:
                continue
            if other.is_debit != transaction.is_debit:
                logger.debug(
                    "[TRANSFER] Found matching transfer: %s on %s",
                    other.display_description,
                    other.date,
                )
                return other

        return None
