from pydantic import BaseModel

from zoho_bookkeeper.domain.transaction_types import TransactionType
from zoho_bookkeeper.models import BankAccount, BankTransaction, CategorizedTransaction


class AccountSummary(BaseModel):
    account: BankAccount
    pending: int


class CandidateList(BaseModel):
    account_id: str
    transactions: list[BankTransaction]


class SuggestResponse(BaseModel):
    categorized: CategorizedTransaction
    debug_lines: list[str]
    available_types: list[TransactionType]
    transfer_account: BankAccount | None = None


class SaveRequest(BaseModel):
    categorized: CategorizedTransaction


class SaveResponse(BaseModel):
    transaction_id: str
    status: str


class CacheStatsResponse(BaseModel):
    processed: int
    skipped: int
    vendors: int
