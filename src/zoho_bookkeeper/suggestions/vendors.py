from collections.abc import Sequence

from rapidfuzz import fuzz, process

from zoho_bookkeeper.core import settings
from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import TransactionSuggestion

logger = get_logger(__name__)


class VendorMatcher:
    """Snap a suggested vendor name onto the spelling already used in the ledger."""

    def __init__(self, threshold: float | None = None):
        if threshold is None:
            threshold = settings.get_env_float(
                "VENDOR_MATCH_THRESHOLD",
                settings.DEFAULT_VENDOR_MATCH_THRESHOLD,
            )
        self.threshold = threshold

    def match(self, vendor_name: str, known_vendors: Sequence[str]) -> str | None:
        if not vendor_name or not known_vendors:
            return None

        lowered = vendor_name.strip().lower()
        for known in known_vendors:
            if known.strip().lower() == lowered:
                return known

        result = process.extractOne(
            vendor_name,
            known_vendors,
            scorer=fuzz.token_sort_ratio,
            processor=lambda value: value.lower(),
        )
        if result:
            match_name, score, _ = result
            if score >= self.threshold:
                logger.debug(
                    "[VENDOR] '%s' matched known vendor '%s' (score %.1f)",
                    vendor_name,
                    match_name,
                    score,
                )
                return match_name
        return None

    def apply(
        self, suggestion: TransactionSuggestion, known_vendors: Sequence[str]
    ) -> TransactionSuggestion:
        if not suggestion.vendor_name:
            return suggestion
        matched = self.match(suggestion.vendor_name, known_vendors)
        if matched is None or matched == suggestion.vendor_name:
            return suggestion
        return suggestion.model_copy(update={"vendor_name": matched})
