"""
Up Bank webhook ingestion.

Flow:
  POST webhook -> verify X-Up-Authenticity-Signature (HMAC-SHA256 of raw body)
               -> fetch the referenced transaction from the Up API
               -> classify -> persist
"""

import hashlib
import hmac
import json
import logging
from typing import Callable, Optional

import httpx

from tracker.config import UP_ACCESS_TOKEN, UP_API_URL, UP_TIMEOUT_SEC
from tracker.core.classifier import classify_transaction
from tracker.core.models import ConsumptionEvent

log = logging.getLogger("caffeine.ingest")


class UpApiError(RuntimeError):
    """Up API returned a non-200 response."""


def validate_signature(payload: bytes, signature: str, secret: str) -> bool:
    """Constant-time check of the hex HMAC-SHA256 signature."""
    try:
        received = bytes.fromhex(signature)
    except ValueError:
        return False
    expected = hmac.new(secret.encode(), payload, hashlib.sha256).digest()
    return hmac.compare_digest(received, expected)


class UpClient:
    """Minimal read-only Up API client."""

    def __init__(self, access_token: str = UP_ACCESS_TOKEN, base_url: str = UP_API_URL,
                 transport: Optional[httpx.BaseTransport] = None):
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=UP_TIMEOUT_SEC,
            transport=transport,
        )

    def _get(self, endpoint: str) -> dict:
        r = self._client.get(endpoint)
        if r.status_code != 200:
            raise UpApiError(f"GET {endpoint} failed with status: {r.status_code}")
        return r.json()["data"]

    def get_transaction(self, transaction_id: str) -> dict:
        return self._get(f"transactions/{transaction_id}")

    def close(self):
        self._client.close()


def _transaction_id(callback: dict) -> Optional[str]:
    rel = callback.get("data", {}).get("relationships", {}).get("transaction")
    if not rel or not rel.get("data"):
        return None
    return rel["data"].get("id")


def handle_webhook_event(
    payload: bytes,
    client: UpClient,
    store: Callable[[ConsumptionEvent], int],
) -> Optional[ConsumptionEvent]:
    """
    Process one verified webhook body. Returns the stored event, or None
    when the callback isn't a caffeine purchase.
    Malformed bodies raise ValueError.
    """
    callback = json.loads(payload)
    if not isinstance(callback, dict) or not isinstance(callback.get("data", {}), dict):
        raise ValueError("webhook body is not a JSON:API object")
    data = callback.get("data", {})
    log.info("Processing event type=%s id=%s",
             data.get("attributes", {}).get("eventType"), data.get("id"))

    txn_id = _transaction_id(callback)
    if txn_id is None:
        log.warning("Event contains no transaction details")
        return None

    txn = client.get_transaction(txn_id)
    attrs = txn.get("attributes", {})
    log.info("Transaction %s: %s %s", txn_id,
             attrs.get("description"), attrs.get("amount", {}).get("value"))

    event = classify_transaction(txn)
    if event is None:
        return None

    row_id = store(event)
    log.info("Logged %s: %.0fmg (#%d)", event.description, event.amount, row_id)
    return event
