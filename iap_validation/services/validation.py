"""
Validation Service - public entry point for purchase receipt validation.

Each call runs decode -> verify -> normalize -> store -> respond as a
sequence of awaited round trips. Any failure ends the call with the raised
error; nothing is persisted before the final storage step, so a cancelled or
failed call leaves no partial state behind.

This service never checks whether a purchase exists. Storage deduplicates by
(store, transaction_id); when it reports no new records the whole submission
is rejected as already seen.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from structlog import get_logger

from iap_validation.exceptions import (
    AlreadySeenError,
    InvalidReceiptError,
    PurchaseValidationError,
    RetryableVerificationError,
)
from iap_validation.models.api import ValidatePurchaseResponse
from iap_validation.models.apple import AppleVerification
from iap_validation.models.domain import Purchase, Store
from iap_validation.observability.logging import log_context
from iap_validation.observability.metrics import metrics
from iap_validation.observability.tracing import trace_operation
from iap_validation.services import normalizer
from iap_validation.services.apple_verifier import AppleVerifierClient
from iap_validation.services.google_verifier import GoogleVerifierClient
from iap_validation.services.storage import PurchaseStorage

logger = get_logger(__name__)


class ValidationService:
    """Validates App Store and Google Play receipts and records new purchases."""

    def __init__(
        self,
        storage: PurchaseStorage,
        apple_client: AppleVerifierClient,
        google_client: GoogleVerifierClient,
        apple_password: str = "",
        google_client_email: str = "",
        google_private_key: str = "",
    ) -> None:
        """
        Initialize validation service.

        Args:
            storage: Insert-if-absent purchase storage
            apple_client: verifyReceipt client
            google_client: Android Publisher client
            apple_password: App-specific shared secret (required for subscriptions)
            google_client_email: Service account email
            google_private_key: Service account RSA private key (PEM)
        """
        self.storage = storage
        self.apple_client = apple_client
        self.google_client = google_client
        self.apple_password = apple_password
        self.google_client_email = google_client_email
        self.google_private_key = google_private_key

    async def validate(
        self,
        store: Store,
        user_id: str,
        receipt: str,
        subscription: bool = False,
    ) -> ValidatePurchaseResponse:
        """Validate a receipt with the given store."""
        if store == Store.APPLE_APP_STORE:
            if subscription:
                return await self.validate_apple_subscription(user_id, receipt)
            return await self.validate_apple_purchase(user_id, receipt)
        if subscription:
            return await self.validate_google_subscription(user_id, receipt)
        return await self.validate_google_purchase(user_id, receipt)

    async def validate_apple_purchase(
        self, user_id: str, receipt: str
    ) -> ValidatePurchaseResponse:
        """
        Validate an App Store receipt holding one-time purchases.

        Every in-app entry of the receipt becomes a purchase candidate.

        Raises:
            RetryableVerificationError: If Apple marks the rejection as transient
            InvalidReceiptError: If Apple rejects the receipt
            AlreadySeenError: If none of the purchases is new
        """
        with self._track(Store.APPLE_APP_STORE, "purchase", user_id):
            verification = await self.apple_client.verify(
                receipt, self.apple_password, is_subscription=False
            )
            self._check_apple_status(verification)

            candidates = normalizer.apple_purchases(user_id, receipt, verification)
            stored = await self.storage.store_purchases(candidates)
            return self._respond(Store.APPLE_APP_STORE, stored, len(candidates))

    async def validate_apple_subscription(
        self, user_id: str, receipt: str
    ) -> ValidatePurchaseResponse:
        """
        Validate an App Store receipt holding auto-renewable subscriptions.

        Requires the app's shared secret; without it the call fails before
        any request is sent.
        """
        with self._track(Store.APPLE_APP_STORE, "subscription", user_id):
            verification = await self.apple_client.verify(
                receipt, self.apple_password, is_subscription=True
            )
            self._check_apple_status(verification)

            candidates = normalizer.apple_subscriptions(user_id, receipt, verification)
            stored = await self.storage.store_subscription_purchases(candidates)
            return self._respond(
                Store.APPLE_APP_STORE, [s.purchase for s in stored], len(candidates)
            )

    async def validate_google_purchase(
        self, user_id: str, receipt: str
    ) -> ValidatePurchaseResponse:
        """Validate a Google Play one-time product receipt."""
        with self._track(Store.GOOGLE_PLAY_STORE, "purchase", user_id):
            verification = await self.google_client.verify_product(
                self.google_client_email, self.google_private_key, receipt
            )

            candidate = normalizer.google_purchase(user_id, receipt, verification)
            stored = await self.storage.store_purchases([candidate])
            return self._respond(Store.GOOGLE_PLAY_STORE, stored, 1)

    async def validate_google_subscription(
        self, user_id: str, receipt: str
    ) -> ValidatePurchaseResponse:
        """Validate a Google Play subscription receipt."""
        with self._track(Store.GOOGLE_PLAY_STORE, "subscription", user_id):
            verification = await self.google_client.verify_subscription(
                self.google_client_email, self.google_private_key, receipt
            )

            candidate = normalizer.google_subscription(user_id, receipt, verification)
            stored = await self.storage.store_subscription_purchases([candidate])
            return self._respond(Store.GOOGLE_PLAY_STORE, [s.purchase for s in stored], 1)

    def _check_apple_status(self, verification: AppleVerification) -> None:
        """Classify a non-zero Apple status as transient or permanent."""
        response = verification.response
        if response.is_valid():
            return

        logger.warning(
            "apple_receipt_rejected",
            status=response.status,
            is_retryable=response.is_retryable,
            environment=response.environment,
        )
        if response.is_retryable:
            raise RetryableVerificationError(response.status)
        raise InvalidReceiptError(
            f"Apple rejected receipt with status {response.status}", status=response.status
        )

    def _respond(
        self, store: Store, stored: list[Purchase], submitted: int
    ) -> ValidatePurchaseResponse:
        if not stored:
            logger.info("purchase_receipt_already_seen", store=store.value, submitted=submitted)
            raise AlreadySeenError(submitted)

        metrics.record_purchases_stored(store.value, len(stored))
        logger.info(
            "purchases_validated",
            store=store.value,
            submitted=submitted,
            stored=len(stored),
        )
        return ValidatePurchaseResponse(
            validated_purchases=[normalizer.to_validated_purchase(p) for p in stored]
        )

    @contextmanager
    def _track(self, store: Store, kind: str, user_id: str) -> Iterator[None]:
        """Trace the call and record its outcome."""
        with (
            log_context(store=store.value, kind=kind, user_id=user_id),
            trace_operation(f"validate_{store.value}_{kind}", store=store.value, kind=kind),
        ):
            try:
                yield
            except PurchaseValidationError as exc:
                metrics.record_validation(store.value, kind, type(exc).__name__)
                logger.info(
                    "purchase_validation_failed",
                    error=type(exc).__name__,
                    retryable=exc.retryable,
                )
                raise
            metrics.record_validation(store.value, kind, "success")
