import math
from typing import Optional

from pydantic import BaseModel, ValidationError, field_validator

from zoho_bookkeeper.domain.transaction_types import parse_transaction_type
from zoho_bookkeeper.logger import get_logger
from zoho_bookkeeper.models import UNCATEGORIZED, TransactionSuggestion, default_suggestion

logger = get_logger(__name__)

DEFAULT_CONFIDENCE = 50
DEFAULT_REASONING = "No reasoning provided"


class SuggestionPayload(BaseModel):
    """JSON shape the model is asked to reply with. Every field is optional."""

    transaction_type: Optional[str] = None
    vendor_name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    transfer_to_account: Optional[str] = None
    confidence: Optional[int] = None
    reasoning: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: object) -> object:
        # inf and nan are left for the int validation to reject
        if isinstance(value, float) and math.isfinite(value):
            return round(value)
        return value


def extract_json_object(text: str) -> str | None:
    """Slice from the first ``{`` to the last ``}``, dropping prose and code fences."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return None
    return text[start:end + 1]


def parse_suggestion(text: str) -> TransactionSuggestion:
    """
    Turn a raw model reply into a suggestion.

    Never raises: anything that cannot be decoded becomes a zero-confidence
    "Uncategorized" suggestion whose reasoning names the failure.
    """
    candidate = extract_json_object(text or "")
    if candidate is None:
        logger.debug("[SUGGEST] Raw response without JSON object: %r", text)
        return default_suggestion("Failed to parse response: no JSON object found")

    try:
        payload = SuggestionPayload.model_validate_json(candidate)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "response"
        reason = f"{location}: {first.get('msg', 'invalid value')}"
        logger.warning("[SUGGEST] Failed to parse response: %s", reason)
        logger.debug("[SUGGEST] Raw response: %r", text)
        return default_suggestion(f"Failed to parse response: {reason}")

    confidence = payload.confidence if payload.confidence is not None else DEFAULT_CONFIDENCE
    return TransactionSuggestion(
        transaction_type=parse_transaction_type(payload.transaction_type),
        vendor_name=payload.vendor_name or None,
        category=payload.category or UNCATEGORIZED,
        description=payload.description or None,
        transfer_to_account=payload.transfer_to_account or None,
        confidence=max(0, min(100, confidence)),
        reasoning=payload.reasoning or DEFAULT_REASONING,
    )
