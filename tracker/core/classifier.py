"""
Transaction classifier: decides which bank transactions are caffeine doses.

Rules:
  restaurants-and-cafes -> exact (merchant, price) lookup in CAFE_LOOKUP
  groceries             -> capsule purchase at the configured supermarket,
                           price between GROCERY_MIN_CENTS and GROCERY_MAX_CENTS
  anything else         -> not a dose
"""

import logging
from datetime import datetime
from typing import Optional

from tracker.config import (
    CAFE_LOOKUP,
    GROCERY_CAFFEINE_MG,
    GROCERY_DESCRIPTION,
    GROCERY_MAX_CENTS,
    GROCERY_MERCHANT_KEYWORDS,
    GROCERY_MIN_CENTS,
    PREDEFINED_EVENTS,
)
from tracker.core.models import ConsumptionEvent

log = logging.getLogger("caffeine.ingest")


def _category(txn: dict) -> Optional[str]:
    data = (txn.get("relationships", {}).get("category") or {}).get("data")
    if not data:
        return None
    return data.get("id")


def classify_transaction(txn: dict) -> Optional[ConsumptionEvent]:
    """
    Map an Up transaction resource to a ConsumptionEvent, or None if
    it isn't a recognised caffeine purchase.
    """
    category = _category(txn)
    if category == "restaurants-and-cafes":
        return _classify_cafe(txn)
    if category == "groceries":
        return _classify_grocery(txn)
    return None


def _parse_common(txn: dict) -> tuple[str, int, datetime]:
    attrs = txn["attributes"]
    cents = abs(int(attrs["amount"]["valueInBaseUnits"]))
    created_at = datetime.fromisoformat(attrs["createdAt"])
    return attrs.get("description", ""), cents, created_at


def _classify_cafe(txn: dict) -> Optional[ConsumptionEvent]:
    description, cents, created_at = _parse_common(txn)
    amount = CAFE_LOOKUP.get((description, cents))
    if amount is None:
        log.info("Cafe purchase not in lookup: %s %dc", description, cents)
        return None
    return ConsumptionEvent(
        timestamp=created_at, description=description,
        amount=amount, cost=cents,
    )


def _classify_grocery(txn: dict) -> Optional[ConsumptionEvent]:
    _, cents, created_at = _parse_common(txn)
    raw = txn["attributes"].get("rawText")
    if raw is None:
        log.info("Grocery purchase has no raw text")
        return None

    raw_upper = raw.upper()
    if not all(kw in raw_upper for kw in GROCERY_MERCHANT_KEYWORDS):
        log.info("Grocery purchase at other merchant: %s", raw)
        return None
    if not GROCERY_MIN_CENTS <= cents <= GROCERY_MAX_CENTS:
        log.info("Grocery amount %dc outside %d-%d", cents, GROCERY_MIN_CENTS, GROCERY_MAX_CENTS)
        return None

    return ConsumptionEvent(
        timestamp=created_at, description=GROCERY_DESCRIPTION,
        amount=GROCERY_CAFFEINE_MG, cost=cents,
    )


def predefined_event(kind: int, now: datetime) -> Optional[ConsumptionEvent]:
    """Build one of the predefined quick-log drinks, stamped at `now`."""
    entry = PREDEFINED_EVENTS.get(kind)
    if entry is None:
        return None
    description, amount, cost = entry
    return ConsumptionEvent(timestamp=now, description=description, amount=amount, cost=cost)
