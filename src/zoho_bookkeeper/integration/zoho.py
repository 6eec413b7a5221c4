import asyncio
import os
from time import monotonic
from typing import Any

import httpx

from zoho_bookkeeper.core import settings
from zoho_bookkeeper.domain.transactions import (
    parse_account,
    parse_bank_account,
    parse_bank_transaction,
    parse_contact,
    parse_expense,
)
from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import (
    Account,
    BankAccount,
    BankTransaction,
    Contact,
    Expense,
    ExpenseCategorization,
    OwnerContributionCategorization,
    SaleCategorization,
    TransferCategorization,
)

logger = get_logger(__name__)

REGION_BASE_URLS = {
    "com": "https://www.zohoapis.com/books/v3",
    "eu": "https://www.zohoapis.eu/books/v3",
    "in": "https://www.zohoapis.in/books/v3",
    "au": "https://www.zohoapis.com.au/books/v3",
}

DEFAULT_ACCOUNTS_CACHE_TTL_SECONDS = 300.0
DEFAULT_PAGE_SIZE = 200
DEFAULT_TIMEOUT_SECONDS = 60.0


class ZohoBooksError(Exception):
    """Zoho answered with a non-zero ``code`` or could not be called at all."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


def resolve_base_url(region: str | None) -> str:
    return REGION_BASE_URLS.get((region or "").strip().lower(), REGION_BASE_URLS["com"])


class ZohoBooksClient:
    def __init__(
        self,
        organization_id: str | None = None,
        access_token: str | None = None,
        region: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        accounts_cache_ttl: float | None = None,
    ):
        self.organization_id = organization_id or os.getenv("ZOHO_ORGANIZATION_ID")
        self.access_token = access_token or os.getenv("ZOHO_ACCESS_TOKEN")
        self.region = region or os.getenv("ZOHO_REGION") or settings.DEFAULT_ZOHO_REGION
        self.base_url = base_url or os.getenv("ZOHO_BASE_URL") or resolve_base_url(self.region)
        self.headers = self._build_headers()
        self._client = client
        self._client_lock = asyncio.Lock()
        self._cache_lock = asyncio.Lock()
        self._accounts_cache: list[Account] | None = None
        self._accounts_cache_expires_at = 0.0
        cache_ttl = accounts_cache_ttl
        if cache_ttl is None:
            cache_ttl = settings.get_env_float("ZOHO_ACCOUNTS_TTL", DEFAULT_ACCOUNTS_CACHE_TTL_SECONDS)
        self._accounts_cache_ttl = max(0.0, cache_ttl)

    def _build_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Zoho-oauthtoken {self.access_token}",
            "Accept": "application/json",
        }

    @property
    def is_configured(self) -> bool:
        return bool(self.organization_id and self.access_token)

    def refresh(self, access_token: str | None = None) -> None:
        """Swap in a new access token and drop cached lookups."""
        token_value = access_token if access_token is not None else os.getenv("ZOHO_ACCESS_TOKEN")
        self.access_token = token_value or None
        self.headers = self._build_headers()
        self._accounts_cache = None
        self._accounts_cache_expires_at = 0.0

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        client = self._client
        if client is not None and not client.is_closed:
            return client

        async with self._client_lock:
            # Another task may have created it while we waited
            client = self._client
            if client is None or client.is_closed:
                client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS)
                self._client = client
            return client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not self.is_configured:
            raise ZohoBooksError("Zoho credentials missing (ZOHO_ORGANIZATION_ID / ZOHO_ACCESS_TOKEN).")

        query: dict[str, Any] = {"organization_id": self.organization_id}
        if params:
            query.update({key: value for key, value in params.items() if value is not None})

        client = await self._get_client()
        response = await client.request(
            method,
            f"{self.base_url}{path}",
            headers=self.headers,
            params=query,
            json=json,
        )

        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict):
            code = data.get("code", 0)
            if code not in (0, None):
                message = data.get("message") or f"Zoho error code {code}"
                logger.error("[ZOHO] %s %s failed: %s (code %s)", method, path, message, code)
                raise ZohoBooksError(str(message), code=code)

        response.raise_for_status()
        return data if isinstance(data, dict) else {}

    async def _paginate(
        self,
        path: str,
        key: str,
        params: dict[str, Any] | None = None,
        per_page: int = DEFAULT_PAGE_SIZE,
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            page_params = dict(params or {})
            page_params.update({"page": page, "per_page": per_page})
            data = await self._request("GET", path, params=page_params)
            batch = data.get(key) or []
            items.extend(batch)

            has_more = bool((data.get("page_context") or {}).get("has_more_page"))
            logger.debug("[ZOHO] %s page %d: %d item(s), more=%s", path, page, len(batch), has_more)
            if not batch or not has_more:
                break
            page += 1
        return items

    async def fetch_uncategorized_transactions(
        self, account_id: str, year: int | None = None
    ) -> list[BankTransaction]:
        params: dict[str, Any] = {
            "account_id": account_id,
            "filter_by": "Status.Uncategorized",
        }
        if year is not None:
            params["date_start"] = f"{year}-01-01"
            params["date_end"] = f"{year}-12-31"

        raw = await self._paginate("/banktransactions", "banktransactions", params)
        transactions = [parse_bank_transaction(item, account_id=account_id) for item in raw]
        logger.info("[ZOHO] %d uncategorized transaction(s) in account %s", len(transactions), account_id)
        return transactions

    async def fetch_bank_accounts(self) -> list[BankAccount]:
        data = await self._request("GET", "/bankaccounts")
        return [parse_bank_account(item) for item in data.get("bankaccounts") or []]

    def _get_cached_accounts(self) -> list[Account] | None:
        if self._accounts_cache is None or self._accounts_cache_ttl <= 0:
            return None
        if monotonic() >= self._accounts_cache_expires_at:
            return None
        return self._accounts_cache

    async def fetch_accounts(self, *, use_cache: bool = True) -> list[Account]:
        if not use_cache:
            data = await self._request("GET", "/chartofaccounts")
            return [parse_account(item) for item in data.get("chartofaccounts") or []]

        async with self._cache_lock:
            cached = self._get_cached_accounts()
            if cached is not None:
                return cached
            data = await self._request("GET", "/chartofaccounts")
            accounts = [parse_account(item) for item in data.get("chartofaccounts") or []]
            if self._accounts_cache_ttl > 0:
                self._accounts_cache = accounts
                self._accounts_cache_expires_at = monotonic() + self._accounts_cache_ttl
            return accounts

    async def fetch_contacts(self, contact_type: str = "vendor") -> list[Contact]:
        raw = await self._paginate("/contacts", "contacts", {"contact_type": contact_type})
        return [parse_contact(item) for item in raw]

    async def search_contact_by_name(self, name: str, contact_type: str = "vendor") -> Contact | None:
        data = await self._request(
            "GET",
            "/contacts",
            params={"contact_name_contains": name, "contact_type": contact_type},
        )
        wanted = name.strip().lower()
        for item in data.get("contacts") or []:
            contact = parse_contact(item)
            if (contact.contact_name or "").strip().lower() == wanted:
                return contact
        return None

    async def get_or_create_vendor(self, name: str) -> Contact:
        existing = await self.search_contact_by_name(name, "vendor")
        if existing is not None:
            return existing

        data = await self._request(
            "POST",
            "/contacts",
            json={"contact_name": name, "contact_type": "vendor"},
        )
        logger.info("[ZOHO] Created vendor '%s'", name)
        return parse_contact(data.get("contact") or {})

    async def search_account_by_name(self, name: str) -> Account | None:
        wanted = name.strip().lower()
        for account in await self.fetch_accounts():
            if account.account_name.strip().lower() == wanted:
                return account
        return None

    async def fetch_expenses(
        self, vendor_id: str, paid_through_account_id: str | None = None
    ) -> list[Expense]:
        params: dict[str, Any] = {"vendor_id": vendor_id}
        if paid_through_account_id:
            params["paid_through_account_id"] = paid_through_account_id
        raw = await self._paginate("/expenses", "expenses", params)
        return [parse_expense(item) for item in raw]

    async def categorize_as_expense(self, transaction_id: str, request: ExpenseCategorization) -> None:
        await self._request(
            "POST",
            f"/banktransactions/uncategorized/{transaction_id}/categorize/expenses",
            json=request.to_payload(),
        )

    async def categorize_as_transfer(self, transaction_id: str, request: TransferCategorization) -> None:
        await self._categorize(transaction_id, request.to_payload())

    async def categorize_as_owner_contribution(
        self, transaction_id: str, request: OwnerContributionCategorization
    ) -> None:
        await self._categorize(transaction_id, request.to_payload())

    async def categorize_as_sale(self, transaction_id: str, request: SaleCategorization) -> None:
        await self._categorize(transaction_id, request.to_payload())

    async def _categorize(self, transaction_id: str, payload: dict[str, Any]) -> None:
        await self._request(
            "POST",
            f"/banktransactions/uncategorized/{transaction_id}/categorize",
            json=payload,
        )
