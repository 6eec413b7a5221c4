from datetime import date as Date
from decimal import Decimal
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from zoho_bookkeeper.domain.transaction_types import TransactionType

UNCATEGORIZED = "Uncategorized"


class BankTransaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    date: Date
    amount: Decimal  # magnitude as reported by Zoho; direction is is_debit
    is_debit: bool
    description: Optional[str] = None
    payee: Optional[str] = None
    reference_number: Optional[str] = None
    account_id: str

    @property
    def signed_amount(self) -> Decimal:
        return -self.amount if self.is_debit else self.amount

    @property
    def display_amount(self) -> str:
        sign = "-" if self.is_debit else ""
        return f"{sign}${abs(self.amount):,.2f}"

    @property
    def display_description(self) -> str:
        return self.description or self.payee or "Unknown"


class BankAccount(BaseModel):
    account_id: str
    account_name: str
    account_type: str = "bank"
    bank_name: Optional[str] = None
    balance: Optional[Decimal] = None


class Account(BaseModel):
    account_id: str
    account_name: str
    account_type: Optional[str] = None


class Contact(BaseModel):
    contact_id: Optional[str] = None
    contact_name: Optional[str] = None
    contact_type: Optional[str] = None


class Expense(BaseModel):
    expense_id: Optional[str] = None
    amount: Optional[Decimal] = None
    account_name: Optional[str] = None  # the expense category
    description: Optional[str] = None
    date: Optional[Date] = None


class TransactionSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_type: TransactionType = TransactionType.EXPENSE
    vendor_name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    transfer_to_account: Optional[str] = None
    confidence: int = Field(default=50, ge=0, le=100)
    reasoning: str = ""


def default_suggestion(reasoning: str) -> TransactionSuggestion:
    """Low-confidence placeholder used whenever the model reply is unusable."""
    return TransactionSuggestion(
        transaction_type=TransactionType.EXPENSE,
        category=UNCATEGORIZED,
        confidence=0,
        reasoning=reasoning,
    )


class CategorizedTransaction(BaseModel):
    """Editable review state for one bank transaction."""

    model_config = ConfigDict(validate_assignment=True)

    transaction: BankTransaction
    suggestion: TransactionSuggestion
    selected_type: TransactionType
    vendor_name: str = ""
    category: str = UNCATEGORIZED
    description: str = ""
    transfer_to_account_id: Optional[str] = None

    @classmethod
    def from_suggestion(
        cls, transaction: BankTransaction, suggestion: TransactionSuggestion
    ) -> "CategorizedTransaction":
        return cls(
            transaction=transaction,
            suggestion=suggestion,
            selected_type=suggestion.transaction_type,
            vendor_name=suggestion.vendor_name or "",
            category=suggestion.category or UNCATEGORIZED,
            description=suggestion.description or transaction.description or "",
        )


class _CategorizationRequest(BaseModel):
    transaction_type: str

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(exclude_none=True)
        for key, value in payload.items():
            if isinstance(value, Decimal):
                payload[key] = float(value)
            elif isinstance(value, Date):
                payload[key] = value.isoformat()
        return payload


class ExpenseCategorization(_CategorizationRequest):
    transaction_type: str = TransactionType.EXPENSE.value
    account_id: str
    vendor_id: Optional[str] = None
    paid_through_account_id: Optional[str] = None
    description: Optional[str] = None
    date: Optional[Date] = None
    amount: Optional[Decimal] = None


class TransferCategorization(_CategorizationRequest):
    transaction_type: str = TransactionType.TRANSFER.value
    to_account_id: Optional[str] = None
    amount: Decimal
    description: Optional[str] = None
    date: Optional[Date] = None


class OwnerContributionCategorization(_CategorizationRequest):
    transaction_type: str = TransactionType.OWNER_CONTRIBUTION.value
    account_id: str
    description: Optional[str] = None
    date: Optional[Date] = None
    amount: Optional[Decimal] = None


class SaleCategorization(_CategorizationRequest):
    transaction_type: str = TransactionType.SALE.value
    account_id: str
    description: Optional[str] = None
    date: Optional[Date] = None
    amount: Optional[Decimal] = None


class CacheStats(NamedTuple):
    processed: int
    skipped: int
    vendors: int
