from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from zoho_bookkeeper.models import Account, BankAccount, BankTransaction, Contact, Expense


def parse_date(value: str | date | datetime | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def parse_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats like 42.5 don't carry binary noise
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_bank_transaction(data: dict[str, Any], account_id: str | None = None) -> BankTransaction:
    debit_or_credit = str(data.get("debit_or_credit") or "").lower()
    amount = parse_decimal(data.get("amount")) or Decimal("0")
    return BankTransaction(
        transaction_id=str(data.get("transaction_id") or data.get("imported_transaction_id") or ""),
        date=parse_date(data.get("date")) or date.today(),
        amount=abs(amount),
        is_debit=debit_or_credit == "debit" if debit_or_credit else amount < 0,
        description=_optional_str(data.get("description")),
        payee=_optional_str(data.get("payee")),
        reference_number=_optional_str(data.get("reference_number")),
        account_id=str(data.get("account_id") or account_id or ""),
    )


def parse_bank_account(data: dict[str, Any]) -> BankAccount:
    return BankAccount(
        account_id=str(data.get("account_id") or ""),
        account_name=str(data.get("account_name") or ""),
        account_type=str(data.get("account_type") or "bank"),
        bank_name=_optional_str(data.get("bank_name")),
        balance=parse_decimal(data.get("balance")),
    )


def parse_account(data: dict[str, Any]) -> Account:
    return Account(
        account_id=str(data.get("account_id") or ""),
        account_name=str(data.get("account_name") or ""),
        account_type=_optional_str(data.get("account_type")),
    )


def parse_contact(data: dict[str, Any]) -> Contact:
    return Contact(
        contact_id=_optional_str(data.get("contact_id")),
        contact_name=_optional_str(data.get("contact_name")),
        contact_type=_optional_str(data.get("contact_type")),
    )


def parse_expense(data: dict[str, Any]) -> Expense:
    amount = data.get("total")
    if amount is None:
        amount = data.get("amount")
    return Expense(
        expense_id=_optional_str(data.get("expense_id")),
        amount=parse_decimal(amount),
        account_name=_optional_str(data.get("account_name")),
        description=_optional_str(data.get("description")),
        date=parse_date(data.get("date")),
    )
