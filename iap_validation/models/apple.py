"""
Apple App Store domain models - Immutable dataclasses for receipt verification.

NO DICTIONARIES - All data uses strongly typed models.

Shapes follow the legacy verifyReceipt endpoint, where timestamps are
millisecond epoch values encoded as decimal strings.
"""

from dataclasses import dataclass, field

from iap_validation.models.domain import Environment

APPLE_RECEIPT_IS_VALID = 0
APPLE_RECEIPT_IS_SANDBOX = 21007  # Sandbox receipt sent to the production endpoint

APPLE_SANDBOX_ENV = "Sandbox"
APPLE_PRODUCTION_ENV = "Production"


@dataclass(frozen=True)
class ApplePendingRenewalInfo:
    """Renewal state of an auto-renewable subscription."""

    auto_renew_status: str  # "1": will renew, "0": turned off


@dataclass(frozen=True)
class AppleInApp:
    """One in-app purchase entry of a verified receipt."""

    transaction_id: str
    original_transaction_id: str  # Differs from transaction_id on renewals and restores
    product_id: str
    purchase_date_ms: str
    expires_date_ms: str | None = None  # Subscriptions only
    cancellation_date_ms: str | None = None  # Refunded transactions only
    cancellation_reason: str | None = None  # "1": app issue, "0": other
    pending_renewal_info: tuple[ApplePendingRenewalInfo, ...] = ()

    def will_auto_renew(self) -> bool:
        """Check the first pending renewal entry for an active auto-renew flag."""
        if not self.pending_renewal_info:
            return False
        return self.pending_renewal_info[0].auto_renew_status == "1"

    def is_cancelled(self) -> bool:
        """Check if Apple customer support refunded this transaction."""
        return bool(self.cancellation_date_ms)


@dataclass(frozen=True)
class AppleReceipt:
    """Decoded receipt body returned by Apple."""

    original_purchase_date_ms: str | None = None
    in_app: tuple[AppleInApp, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AppleVerifyReceiptResponse:
    """Parsed verifyReceipt response."""

    status: int
    is_retryable: bool = False  # If true the request must be retried later
    environment: str = ""  # "Sandbox" or "Production"
    receipt: AppleReceipt | None = None

    def is_valid(self) -> bool:
        """Check if Apple accepted the receipt."""
        return self.status == APPLE_RECEIPT_IS_VALID

    def is_sandbox_receipt(self) -> bool:
        """Check if a sandbox receipt was sent to the production endpoint."""
        return self.status == APPLE_RECEIPT_IS_SANDBOX


@dataclass(frozen=True)
class AppleVerification:
    """Result of one Apple verification round trip (after any sandbox redirect)."""

    response: AppleVerifyReceiptResponse
    raw_body: str

    @property
    def status(self) -> int:
        return self.response.status

    @property
    def environment(self) -> Environment:
        if self.response.environment == APPLE_SANDBOX_ENV:
            return Environment.SANDBOX
        return Environment.PRODUCTION

    @property
    def in_app(self) -> tuple[AppleInApp, ...]:
        """In-app entries of the receipt, empty when Apple returned none."""
        if self.response.receipt is None:
            return ()
        return self.response.receipt.in_app
