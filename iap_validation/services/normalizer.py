"""
Purchase normalization - provider responses to canonical purchase records.

Provider timestamps are millisecond offsets from the Unix epoch. Receipts and
provider bodies are kept verbatim on each record for audit.
"""

import math
from datetime import UTC, datetime, timedelta

from iap_validation.exceptions import InvalidReceiptError
from iap_validation.models.api import ValidatedPurchase
from iap_validation.models.apple import AppleInApp, AppleVerification
from iap_validation.models.domain import Purchase, Store, SubscriptionPurchase
from iap_validation.models.google_play import (
    GoogleProductVerification,
    GoogleSubscriptionVerification,
)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def parse_millis(value: int | str) -> datetime:
    """Convert a millisecond epoch value (int or decimal string) to a UTC datetime."""
    try:
        millis = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidReceiptError(f"invalid millisecond timestamp: {value!r}") from exc
    try:
        return EPOCH + timedelta(milliseconds=millis)
    except OverflowError as exc:
        raise InvalidReceiptError(f"millisecond timestamp out of range: {value!r}") from exc


def to_unix_seconds(moment: datetime | None) -> int:
    """Whole seconds since epoch, 0 when unset."""
    if moment is None:
        return 0
    return math.floor(moment.timestamp())


def _purchase(**fields: object) -> Purchase:
    try:
        return Purchase(**fields)  # type: ignore[arg-type]
    except ValueError as exc:
        raise InvalidReceiptError(str(exc)) from exc


def _apple_purchase(
    user_id: str, receipt: str, verification: AppleVerification, entry: AppleInApp
) -> Purchase:
    return _purchase(
        user_id=user_id,
        store=Store.APPLE_APP_STORE,
        product_id=entry.product_id,
        transaction_id=entry.transaction_id,
        raw_request=receipt,
        raw_response=verification.raw_body,
        purchase_time=parse_millis(entry.purchase_date_ms),
        environment=verification.environment,
    )


def apple_purchases(
    user_id: str, receipt: str, verification: AppleVerification
) -> list[Purchase]:
    """One purchase per in-app entry of a valid Apple receipt."""
    return [
        _apple_purchase(user_id, receipt, verification, entry) for entry in verification.in_app
    ]


def apple_subscriptions(
    user_id: str, receipt: str, verification: AppleVerification
) -> list[SubscriptionPurchase]:
    """One subscription purchase per in-app entry of a valid Apple receipt."""
    return [
        SubscriptionPurchase(
            purchase=_apple_purchase(user_id, receipt, verification, entry),
            auto_renew=entry.will_auto_renew(),
            expires_time=parse_millis(entry.expires_date_ms) if entry.expires_date_ms else None,
        )
        for entry in verification.in_app
    ]


def google_purchase(
    user_id: str, receipt: str, verification: GoogleProductVerification
) -> Purchase:
    """Purchase for a verified one-time Google Play product."""
    purchase_time_millis = verification.response.purchase_time_millis
    if purchase_time_millis is None:
        purchase_time_millis = verification.receipt.purchase_time

    return _purchase(
        user_id=user_id,
        store=Store.GOOGLE_PLAY_STORE,
        product_id=verification.receipt.product_id,
        transaction_id=verification.receipt.purchase_token,
        raw_request=receipt,
        raw_response=verification.raw_body,
        purchase_time=parse_millis(purchase_time_millis),
        environment=verification.environment,
    )


def google_subscription(
    user_id: str, receipt: str, verification: GoogleSubscriptionVerification
) -> SubscriptionPurchase:
    """Subscription purchase for a verified Google Play subscription."""
    response = verification.response
    start_time_millis = response.start_time_millis
    if start_time_millis is None:
        start_time_millis = verification.receipt.purchase_time

    purchase = _purchase(
        user_id=user_id,
        store=Store.GOOGLE_PLAY_STORE,
        product_id=verification.receipt.product_id,
        transaction_id=verification.receipt.purchase_token,
        raw_request=receipt,
        raw_response=verification.raw_body,
        purchase_time=parse_millis(start_time_millis),
        environment=verification.environment,
    )
    return SubscriptionPurchase(
        purchase=purchase,
        auto_renew=response.auto_renewing,
        expires_time=(
            parse_millis(response.expiry_time_millis)
            if response.expiry_time_millis is not None
            else None
        ),
    )


def to_validated_purchase(purchase: Purchase) -> ValidatedPurchase:
    """Outward view of a stored purchase."""
    return ValidatedPurchase(
        product_id=purchase.product_id,
        transaction_id=purchase.transaction_id,
        store=purchase.store,
        purchase_time=to_unix_seconds(purchase.purchase_time),
        create_time=to_unix_seconds(purchase.create_time),
        update_time=to_unix_seconds(purchase.update_time),
        provider_response=purchase.raw_response,
        environment=purchase.environment,
    )
