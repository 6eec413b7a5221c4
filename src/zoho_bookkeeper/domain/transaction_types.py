from enum import Enum


class TransactionType(str, Enum):
    """Categorization outcomes. Values are the Zoho Books wire names."""

    EXPENSE = "expense"
    TRANSFER = "transfer_fund"
    OWNER_CONTRIBUTION = "owner_contribution"
    SALE = "sales_without_invoices"
    REFUND = "refund"
    SKIP = "skip"


_DISPLAY_NAMES = {
    TransactionType.EXPENSE: "Expense",
    TransactionType.TRANSFER: "Transfer",
    TransactionType.OWNER_CONTRIBUTION: "Owner Contribution",
    TransactionType.SALE: "Sale",
    TransactionType.REFUND: "Refund",
    TransactionType.SKIP: "Skip",
}

_ALIASES = {
    "expense": TransactionType.EXPENSE,
    "transfer": TransactionType.TRANSFER,
    "transfer_fund": TransactionType.TRANSFER,
    "owner_contribution": TransactionType.OWNER_CONTRIBUTION,
    "sale": TransactionType.SALE,
    "sales_without_invoices": TransactionType.SALE,
    "refund": TransactionType.REFUND,
    "skip": TransactionType.SKIP,
}

USER_EXPENSE_TYPES: tuple[TransactionType, ...] = (
    TransactionType.EXPENSE,
    TransactionType.TRANSFER,
    TransactionType.REFUND,
    TransactionType.SKIP,
)

USER_INCOME_TYPES: tuple[TransactionType, ...] = (
    TransactionType.SALE,
    TransactionType.TRANSFER,
    TransactionType.OWNER_CONTRIBUTION,
    TransactionType.SKIP,
)

CREDIT_CARD_ACCOUNT_TYPE = "credit_card"


def display_name(transaction_type: TransactionType) -> str:
    return _DISPLAY_NAMES[transaction_type]


def is_credit_card(account_type: str | None) -> bool:
    return (account_type or "").strip().lower() == CREDIT_CARD_ACCOUNT_TYPE


def is_user_expense(is_debit: bool, account_type: str | None) -> bool:
    """
    True when the transaction is money leaving the business.

    Credit-card accounts report purchases with the opposite debit/credit
    flag from bank accounts, so the flag is inverted for them.
    """
    return is_debit != is_credit_card(account_type)


def available_types(is_debit: bool, account_type: str | None) -> list[TransactionType]:
    if is_user_expense(is_debit, account_type):
        return list(USER_EXPENSE_TYPES)
    return list(USER_INCOME_TYPES)


def parse_transaction_type(value: str | None) -> TransactionType:
    """Map a loosely formatted type name onto the enum; unknown values are expenses."""
    if not value:
        return TransactionType.EXPENSE
    return _ALIASES.get(value.strip().lower(), TransactionType.EXPENSE)
