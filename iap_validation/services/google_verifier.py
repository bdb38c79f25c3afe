"""
Google Play purchase verification against the Android Publisher API (v3).

NO DICTIONARIES - All data uses strongly typed models.

Google reports no environment and no "invalid receipt" verdict: a 200 lookup
is the proof of purchase, anything else means the API could not vouch for it.
"""

import time
from typing import Any
from urllib.parse import quote

import httpx
from structlog import get_logger

from iap_validation.exceptions import ProviderUnavailableError, TransportError
from iap_validation.models.google_play import (
    GoogleProductPurchase,
    GoogleProductVerification,
    GoogleReceipt,
    GoogleSubscriptionPurchase,
    GoogleSubscriptionVerification,
)
from iap_validation.observability.metrics import metrics
from iap_validation.services.google_token import GoogleTokenProvider
from iap_validation.services.receipt_decoder import decode_google_receipt

logger = get_logger(__name__)

ANDROID_PUBLISHER_BASE_URL = "https://androidpublisher.googleapis.com"

PROVIDER = "google"


def _optional_int(value: object) -> int | None:
    if value is None or value == "":
        return None
    return int(value)  # type: ignore[call-overload]


def parse_product_purchase(data: dict[str, Any]) -> GoogleProductPurchase:
    """Build a product purchase from the purchases.products JSON body."""
    return GoogleProductPurchase(
        order_id=str(data.get("orderId", "")),
        purchase_state=int(data.get("purchaseState", 0)),
        purchase_time_millis=_optional_int(data.get("purchaseTimeMillis")),
        acknowledgement_state=int(data.get("acknowledgementState", 0)),
        consumption_state=int(data.get("consumptionState", 0)),
        purchase_type=_optional_int(data.get("purchaseType")),
        developer_payload=str(data.get("developerPayload", "")),
        kind=str(data.get("kind", "")),
        region_code=str(data.get("regionCode", "")),
    )


def parse_subscription_purchase(data: dict[str, Any]) -> GoogleSubscriptionPurchase:
    """Build a subscription purchase from the purchases.subscriptions JSON body."""
    return GoogleSubscriptionPurchase(
        order_id=str(data.get("orderId", "")),
        auto_renewing=bool(data.get("autoRenewing", False)),
        start_time_millis=_optional_int(data.get("startTimeMillis")),
        expiry_time_millis=_optional_int(data.get("expiryTimeMillis")),
        acknowledgement_state=int(data.get("acknowledgementState", 0)),
        cancel_reason=_optional_int(data.get("cancelReason")),
        user_cancellation_time_millis=_optional_int(data.get("userCancellationTimeMillis")),
        payment_state=_optional_int(data.get("paymentState")),
        linked_purchase_token=str(data.get("linkedPurchaseToken", "")),
        purchase_type=_optional_int(data.get("purchaseType")),
        developer_payload=str(data.get("developerPayload", "")),
        kind=str(data.get("kind", "")),
    )


class GoogleVerifierClient:
    """Looks up Google Play purchases with a service account."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_provider: GoogleTokenProvider,
        base_url: str = ANDROID_PUBLISHER_BASE_URL,
    ) -> None:
        self.http_client = http_client
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")

    async def verify_product(
        self,
        client_email: str,
        private_key: str,
        receipt: str,
    ) -> GoogleProductVerification:
        """
        Verify a one-time product purchase.

        Raises:
            MalformedReceiptError: If the receipt envelope cannot be decoded
            InvalidReceiptError: If the receipt lacks lookup fields
            CredentialsInvalidError: If the service account is not configured
            TokenAcquisitionError: If no access token can be obtained
            ProviderUnavailableError: If the API answers non-200
            TransportError: If the API cannot be reached
        """
        decoded = decode_google_receipt(receipt)
        token = await self.token_provider.token(client_email, private_key)
        raw_body, data = await self._get(decoded, "products", token)

        try:
            response = parse_product_purchase(data)
        except (ValueError, TypeError) as exc:
            raise ProviderUnavailableError(PROVIDER, 200, "unreadable product purchase") from exc

        logger.info(
            "google_play_product_verified",
            order_id=response.order_id,
            product_id=decoded.product_id,
            purchase_state=response.purchase_state,
            is_test=response.is_test_purchase(),
        )
        return GoogleProductVerification(response=response, receipt=decoded, raw_body=raw_body)

    async def verify_subscription(
        self,
        client_email: str,
        private_key: str,
        receipt: str,
    ) -> GoogleSubscriptionVerification:
        """
        Verify a subscription purchase.

        Raises the same errors as verify_product.
        """
        decoded = decode_google_receipt(receipt)
        token = await self.token_provider.token(client_email, private_key)
        raw_body, data = await self._get(decoded, "subscriptions", token)

        try:
            response = parse_subscription_purchase(data)
        except (ValueError, TypeError) as exc:
            raise ProviderUnavailableError(
                PROVIDER, 200, "unreadable subscription purchase"
            ) from exc

        logger.info(
            "google_play_subscription_verified",
            order_id=response.order_id,
            product_id=decoded.product_id,
            auto_renewing=response.auto_renewing,
            cancel_reason=response.cancel_reason,
        )
        return GoogleSubscriptionVerification(
            response=response, receipt=decoded, raw_body=raw_body
        )

    def purchase_url(self, receipt: GoogleReceipt, kind: str) -> str:
        """Android Publisher resource URL for a decoded receipt."""
        return (
            f"{self.base_url}/androidpublisher/v3/applications/"
            f"{quote(receipt.package_name, safe='')}/purchases/{kind}/"
            f"{quote(receipt.product_id, safe='')}/tokens/"
            f"{quote(receipt.purchase_token, safe='')}"
        )

    async def _get(
        self, receipt: GoogleReceipt, kind: str, token: str
    ) -> tuple[str, dict[str, Any]]:
        url = self.purchase_url(receipt, kind)
        start_time = time.time()
        try:
            response = await self.http_client.get(
                url,
                params={"access_token": token},
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            metrics.record_provider_request(PROVIDER, None, time.time() - start_time)
            logger.error(
                "google_play_lookup_transport_failed",
                kind=kind,
                product_id=receipt.product_id,
                error=str(exc),
            )
            raise TransportError(PROVIDER, str(exc)) from exc

        metrics.record_provider_request(PROVIDER, response.status_code, time.time() - start_time)

        if response.status_code != 200:
            logger.error(
                "google_play_lookup_non_200",
                kind=kind,
                product_id=receipt.product_id,
                status=response.status_code,
                error=response.text[:500],
            )
            raise ProviderUnavailableError(PROVIDER, response.status_code)

        raw_body = response.text
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderUnavailableError(PROVIDER, 200, "response is not JSON") from exc
        if not isinstance(data, dict):
            raise ProviderUnavailableError(PROVIDER, 200, "response is not a JSON object")

        return raw_body, data
