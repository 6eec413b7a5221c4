import json
import os
import threading

from pydantic import BaseModel, Field, ValidationError

from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import CacheStats

logger = get_logger(__name__)


class CacheDocument(BaseModel):
    processed_transactions: set[str] = Field(default_factory=set)
    skipped_transactions: set[str] = Field(default_factory=set)
    known_vendors: set[str] = Field(default_factory=set)

    def to_json(self) -> str:
        data = {
            "known_vendors": sorted(self.known_vendors),
            "processed_transactions": sorted(self.processed_transactions),
            "skipped_transactions": sorted(self.skipped_transactions),
        }
        return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


class TransactionCache:
    """
    Durable record of which bank transactions were already handled, plus the
    vendor names seen so far.

    State lives in memory and is only written by ``save()``. A transaction id
    may end up in both the processed and skipped sets if a caller marks it
    both ways; nothing here prevents that.
    """

    def __init__(self, data_dir: str = ".", filename: str = "cache.json"):
        self.data_path = os.path.join(data_dir, filename)
        self._lock = threading.Lock()
        self._document = CacheDocument()
        self.load()

    def load(self) -> None:
        with self._lock:
            self._document = self._read_document()

    def _read_document(self) -> CacheDocument:
        if not os.path.exists(self.data_path):
            return CacheDocument()
        try:
            with open(self.data_path, encoding="utf-8") as f:
                raw = f.read()
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("[CACHE] Failed to read %s: %s. Starting fresh.", self.data_path, exc)
            return CacheDocument()

        if not raw.strip():
            logger.warning("[CACHE] Cache file is empty, starting fresh: %s", self.data_path)
            return CacheDocument()

        try:
            document = CacheDocument.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("[CACHE] Failed to load cache from %s: %s", self.data_path, exc)
            return CacheDocument()

        logger.debug(
            "[CACHE] Loaded %d processed, %d skipped, %d vendors from %s",
            len(document.processed_transactions),
            len(document.skipped_transactions),
            len(document.known_vendors),
            self.data_path,
        )
        return document

    def snapshot(self) -> CacheDocument:
        with self._lock:
            return self._document.model_copy(deep=True)

    def save(self) -> None:
        """Write the cache to disk. Errors propagate to the caller."""
        payload = self.snapshot().to_json()
        data_dir = os.path.dirname(self.data_path)
        if data_dir:
            os.makedirs(data_dir, exist_ok=True)
        tmp_path = f"{self.data_path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.data_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug("[CACHE] Saved cache to %s", self.data_path)

    def is_processed(self, transaction_id: str) -> bool:
        with self._lock:
            return transaction_id in self._document.processed_transactions

    def is_skipped(self, transaction_id: str) -> bool:
        with self._lock:
            return transaction_id in self._document.skipped_transactions

    def mark_processed(self, transaction_id: str) -> None:
        with self._lock:
            self._document.processed_transactions.add(transaction_id)

    def mark_skipped(self, transaction_id: str) -> None:
        with self._lock:
            self._document.skipped_transactions.add(transaction_id)

    def add_vendor(self, vendor_name: str) -> None:
        with self._lock:
            self._document.known_vendors.add(vendor_name)

    def get_known_vendors(self) -> list[str]:
        with self._lock:
            return sorted(self._document.known_vendors)

    def clear(self) -> None:
        with self._lock:
            self._document = CacheDocument()
        logger.info("[CACHE] Cache cleared.")

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                processed=len(self._document.processed_transactions),
                skipped=len(self._document.skipped_transactions),
                vendors=len(self._document.known_vendors),
            )
