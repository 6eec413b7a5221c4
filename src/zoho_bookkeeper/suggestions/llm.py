import os
from collections.abc import Sequence

from openai import OpenAI

from zoho_bookkeeper.core import settings
from zoho_bookkeeper.domain.transaction_types import is_user_expense
from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import BankAccount, BankTransaction, TransactionSuggestion, default_suggestion
from zoho_bookkeeper.suggestions.parsing import parse_suggestion

logger = get_logger(__name__)

VENDOR_PROMPT_LIMIT = 50
NO_RESPONSE_REASONING = "Failed to get response"


def build_system_prompt(categories: Sequence[str], bank_accounts: Sequence[BankAccount]) -> str:
    category_lines = "\n".join(categories)
    account_names = ", ".join(account.account_name for account in bank_accounts)

    return f"""You are a bookkeeping assistant helping categorize bank transactions for a small business.

Your task is to analyze each transaction and suggest:
1. Transaction type (expense, transfer, owner_contribution, sale, refund or skip)
2. Vendor name (clean, standardized name)
3. Expense category from the available list
4. A brief description

Available expense categories:
{category_lines}

Available bank accounts (for detecting transfers):
{account_names}

Respond ONLY in this exact JSON format:
{{
  "transaction_type": "expense|transfer|owner_contribution|sale|refund|skip",
  "vendor_name": "Clean Vendor Name",
  "category": "Category Name",
  "description": "Brief description",
  "transfer_to_account": "Account Name (only if transfer)",
  "confidence": 85,
  "reasoning": "Why you chose this categorization"
}}

Guidelines:
- For transfers: Look for keywords like "TRANSFER", bank names, or matches with other account names
- For expenses: Match common vendor patterns (Amazon = Office Supplies or Cost of Goods Sold, etc.)
- For owner contributions: Personal deposits, shareholder loans
- For sales: Customer payments, revenue deposits
- Use "skip" for unclear transactions that need manual review
- Confidence should be 0-100 based on how certain you are
- Always provide a clean, standardized vendor name (e.g., "AMAZON.COM*123456" -> "Amazon")
"""


def build_user_prompt(
    transaction: BankTransaction,
    existing_vendors: Sequence[str],
    account_type: str | None = "bank",
) -> str:
    vendor_list = ", ".join(list(existing_vendors)[:VENDOR_PROMPT_LIMIT])
    direction = (
        "DEBIT/expense"
        if is_user_expense(transaction.is_debit, account_type)
        else "CREDIT/income"
    )

    return f"""Categorize this bank transaction:

Date: {transaction.date.isoformat()}
Amount: {transaction.display_amount} ({direction})
Description: {transaction.description or "N/A"}
Payee: {transaction.payee or "N/A"}
Reference: {transaction.reference_number or "N/A"}

Existing vendors in the system (for matching):
{vendor_list or "None yet"}

Provide your categorization suggestion in JSON format.
"""


class LLMSuggester:
    def __init__(
        self,
        categories: Sequence[str],
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ):
        self.client = OpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or None,
        )
        self.model = model or os.getenv("OPENAI_MODEL") or settings.DEFAULT_OPENAI_MODEL
        self.categories = list(categories)

    def suggest(
        self,
        transaction: BankTransaction,
        bank_accounts: Sequence[BankAccount],
        existing_vendors: Sequence[str],
        account_type: str | None = "bank",
    ) -> TransactionSuggestion:
        """
        Ask the model for a categorization.

        API and network errors propagate; an empty or malformed reply
        degrades to a zero-confidence "Uncategorized" suggestion.
        """
        system_prompt = build_system_prompt(self.categories, bank_accounts)
        user_prompt = build_user_prompt(transaction, existing_vendors, account_type)

        logger.debug(
            "[SUGGEST] Requesting suggestion for %s: '%s'",
            transaction.transaction_id,
            transaction.display_description[:50],
        )
        try:
            text = self.create_message(system_prompt, user_prompt)
        except Exception as exc:
            logger.error("[SUGGEST] LLM request failed for %s: %s", transaction.transaction_id, exc)
            raise

        if not text:
            logger.warning("[SUGGEST] Empty response for %s", transaction.transaction_id)
            return default_suggestion(NO_RESPONSE_REASONING)

        suggestion = parse_suggestion(text)
        logger.debug(
            "[SUGGEST] %s -> %s / %s (confidence %d)",
            transaction.transaction_id,
            suggestion.transaction_type.value,
            suggestion.category,
            suggestion.confidence,
        )
        return suggestion

    def create_message(self, system_prompt: str, user_prompt: str) -> str | None:
        response = self.client.responses.create(
            model=self.model,
            instructions=system_prompt,
            input=user_prompt,
            temperature=0.0,
            max_output_tokens=1024,
        )
        return self._extract_first_text(response)

    @staticmethod
    def _extract_first_text(response: object) -> str | None:
        output = getattr(response, "output", None)
        if output:
            for item in output:
                content = getattr(item, "content", None)
                if not content:
                    continue
                for block in content:
                    block_type = getattr(block, "type", None)
                    if block_type in {"output_text", "text"}:
                        text = getattr(block, "text", None)
                        if text:
                            return text

        output_text = getattr(response, "output_text", None)
        if isinstance(output_text, str) and output_text:
            return output_text
        return None


def build_suggester() -> LLMSuggester | None:
    """An ``LLMSuggester`` when ``OPENAI_API_KEY`` is set, otherwise ``None``."""
    if not os.getenv("OPENAI_API_KEY"):
        logger.warning("OPENAI_API_KEY not set. Suggestions will be placeholders.")
        return None
    suggester = LLMSuggester(categories=settings.get_env_list("BOOKKEEPER_CATEGORIES"))
    logger.info(
        "LLM suggester enabled: model=%s, base_url=%s",
        suggester.model,
        os.getenv("OPENAI_BASE_URL") or "default",
    )
    return suggester
