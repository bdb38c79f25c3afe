"""
Google Play domain models - Immutable dataclasses for purchase verification.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass

from iap_validation.models.domain import Environment


@dataclass(frozen=True)
class GoogleReceipt:
    """Purchase fields decoded from the client-side Google Play receipt."""

    package_name: str
    product_id: str
    purchase_token: str
    order_id: str = ""
    purchase_state: int = 0  # 0: purchased, 1: canceled, 2: pending
    purchase_time: int = 0  # Milliseconds since epoch


@dataclass(frozen=True)
class GoogleProductPurchase:
    """purchases.products resource returned by the Android Publisher API."""

    order_id: str
    purchase_state: int  # 0: purchased, 1: canceled, 2: pending
    purchase_time_millis: int | None
    acknowledgement_state: int  # 0: not acknowledged, 1: acknowledged
    consumption_state: int  # 0: not consumed, 1: consumed
    purchase_type: int | None = None  # None: real, 0: test, 1: promo, 2: rewarded
    developer_payload: str = ""
    kind: str = ""
    region_code: str = ""

    def is_test_purchase(self) -> bool:
        """Check if this is a test purchase (license tester account)."""
        return self.purchase_type == 0


@dataclass(frozen=True)
class GoogleSubscriptionPurchase:
    """purchases.subscriptions resource returned by the Android Publisher API."""

    order_id: str
    auto_renewing: bool
    start_time_millis: int | None
    expiry_time_millis: int | None
    acknowledgement_state: int = 0
    cancel_reason: int | None = None  # 0: user, 1: system, 2: replaced, 3: developer
    user_cancellation_time_millis: int | None = None  # Only when cancel_reason is 0
    payment_state: int | None = None  # 0: pending, 1: received, 2: free trial, 3: deferred
    linked_purchase_token: str = ""
    purchase_type: int | None = None  # None: real, 0: test, 1: promo
    developer_payload: str = ""
    kind: str = ""

    def is_cancelled(self) -> bool:
        """Check if the subscription was cancelled for any reason."""
        return self.cancel_reason is not None


@dataclass(frozen=True)
class GoogleProductVerification:
    """Result of a one-time product lookup. A 200 response is the verdict."""

    response: GoogleProductPurchase
    receipt: GoogleReceipt
    raw_body: str

    @property
    def status(self) -> int:
        return 0

    @property
    def environment(self) -> Environment:
        return Environment.UNKNOWN


@dataclass(frozen=True)
class GoogleSubscriptionVerification:
    """Result of a subscription lookup. A 200 response is the verdict."""

    response: GoogleSubscriptionPurchase
    receipt: GoogleReceipt
    raw_body: str

    @property
    def status(self) -> int:
        return 0

    @property
    def environment(self) -> Environment:
        return Environment.UNKNOWN
