"""
Google Play receipt decoding.

The client-side Google Play receipt is a JSON object whose "json" field holds
a second, separately encoded JSON document with the purchase fields:

    {"json": "{\\"orderId\\":\\"GPA.1234-5678\\",\\"packageName\\":\\"com.example\\",
               \\"productId\\":\\"coins_100\\",\\"purchaseTime\\":1607721533824,
               \\"purchaseState\\":0,\\"purchaseToken\\":\\"...\\"}",
     "signature": "...",
     "skuDetails": "{...}"}

signature and skuDetails are ignored.
"""

import json
from typing import Any

from structlog import get_logger

from iap_validation.exceptions import InvalidReceiptError, MalformedReceiptError
from iap_validation.models.google_play import GoogleReceipt

logger = get_logger(__name__)


def _load_object(document: str, stage: str) -> dict[str, Any]:
    try:
        value = json.loads(document)
    except (json.JSONDecodeError, TypeError) as exc:
        raise MalformedReceiptError(f"{stage} is not valid JSON") from exc
    if not isinstance(value, dict):
        raise MalformedReceiptError(f"{stage} is not a JSON object")
    return value


def decode_google_receipt(receipt: str) -> GoogleReceipt:
    """
    Decode a raw Google Play receipt into its purchase fields.

    Raises:
        MalformedReceiptError: If either JSON layer cannot be decoded or the
            outer object has no string "json" field
        InvalidReceiptError: If the purchase cannot be looked up because
            package name, product ID or purchase token is missing
    """
    if not receipt:
        raise MalformedReceiptError("receipt is empty")

    wrapper = _load_object(receipt, "receipt envelope")

    unwrapped = wrapper.get("json")
    if not isinstance(unwrapped, str):
        raise MalformedReceiptError("'json' field not found, receipt is malformed")

    inner = _load_object(unwrapped, "receipt 'json' field")

    try:
        decoded = GoogleReceipt(
            package_name=str(inner.get("packageName") or ""),
            product_id=str(inner.get("productId") or ""),
            purchase_token=str(inner.get("purchaseToken") or ""),
            order_id=str(inner.get("orderId") or ""),
            purchase_state=int(inner.get("purchaseState") or 0),
            purchase_time=int(inner.get("purchaseTime") or 0),
        )
    except (TypeError, ValueError, OverflowError) as exc:
        raise MalformedReceiptError(f"receipt field has wrong type: {exc}") from exc

    missing = [
        name
        for name, value in (
            ("packageName", decoded.package_name),
            ("productId", decoded.product_id),
            ("purchaseToken", decoded.purchase_token),
        )
        if not value
    ]
    if missing:
        logger.warning("google_receipt_missing_fields", missing=missing)
        raise InvalidReceiptError(f"receipt is missing {', '.join(missing)}")

    return decoded
