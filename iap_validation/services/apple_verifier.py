"""
Apple App Store receipt verification (verifyReceipt).

Receipts are always sent to the production endpoint first. Apple answers
status 21007 when a sandbox receipt reaches production; the identical request
is then sent once to the sandbox endpoint. There is no further fallback.
"""

import time
from typing import Any

import httpx
from structlog import get_logger

from iap_validation.exceptions import (
    CredentialsInvalidError,
    MalformedReceiptError,
    ProviderUnavailableError,
    TransportError,
)
from iap_validation.models.apple import (
    AppleInApp,
    ApplePendingRenewalInfo,
    AppleReceipt,
    AppleVerification,
    AppleVerifyReceiptResponse,
)
from iap_validation.observability.metrics import metrics

logger = get_logger(__name__)

APPLE_URL_PRODUCTION = "https://buy.itunes.apple.com/verifyReceipt"
APPLE_URL_SANDBOX = "https://sandbox.itunes.apple.com/verifyReceipt"

PROVIDER = "apple"


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _parse_in_app(data: dict[str, Any]) -> AppleInApp:
    renewal_info = tuple(
        ApplePendingRenewalInfo(auto_renew_status=str(info.get("auto_renew_status", "")))
        for info in data.get("pending_renewal_info") or []
        if isinstance(info, dict)
    )
    return AppleInApp(
        transaction_id=str(data.get("transaction_id", "")),
        original_transaction_id=str(data.get("original_transaction_id", "")),
        product_id=str(data.get("product_id", "")),
        purchase_date_ms=str(data.get("purchase_date_ms", "")),
        expires_date_ms=_optional_str(data.get("expires_date_ms")),
        cancellation_date_ms=_optional_str(data.get("cancellation_date_ms")),
        cancellation_reason=_optional_str(data.get("cancellation_reason")),
        pending_renewal_info=renewal_info,
    )


def parse_verify_receipt_response(data: dict[str, Any]) -> AppleVerifyReceiptResponse:
    """Build the typed response from the decoded verifyReceipt JSON body."""
    receipt: AppleReceipt | None = None
    receipt_data = data.get("receipt")
    if isinstance(receipt_data, dict):
        receipt = AppleReceipt(
            original_purchase_date_ms=_optional_str(receipt_data.get("original_purchase_date_ms")),
            in_app=tuple(
                _parse_in_app(entry)
                for entry in receipt_data.get("in_app") or []
                if isinstance(entry, dict)
            ),
        )

    return AppleVerifyReceiptResponse(
        status=int(data["status"]),
        is_retryable=bool(data.get("is-retryable", False)),
        environment=str(data.get("environment", "")),
        receipt=receipt,
    )


class AppleVerifierClient:
    """Posts receipts to Apple's verifyReceipt endpoints."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        production_url: str = APPLE_URL_PRODUCTION,
        sandbox_url: str = APPLE_URL_SANDBOX,
    ) -> None:
        self.http_client = http_client
        self.production_url = production_url
        self.sandbox_url = sandbox_url

    async def verify(
        self,
        receipt: str,
        password: str = "",
        is_subscription: bool = False,
    ) -> AppleVerification:
        """
        Verify a receipt, redirecting once to the sandbox when Apple asks for it.

        Args:
            receipt: Base64 receipt data from the device
            password: App-specific shared secret (required for subscriptions)
            is_subscription: Whether the receipt holds auto-renewable subscriptions

        Returns:
            Verification result; the Apple status is not interpreted here

        Raises:
            MalformedReceiptError: If the receipt is empty
            CredentialsInvalidError: If a subscription is verified without password
            ProviderUnavailableError: If Apple answers non-200 or an unreadable body
            TransportError: If Apple cannot be reached
        """
        if not receipt:
            raise MalformedReceiptError("'receipt' is empty")
        if is_subscription and not password:
            raise CredentialsInvalidError(
                "'password' is empty, subscriptions need the shared secret"
            )

        payload: dict[str, Any] = {
            "receipt-data": receipt,
            "exclude-old-transactions": True,
        }
        if password:
            payload["password"] = password

        verification = await self._request(self.production_url, payload)

        if verification.response.is_sandbox_receipt():
            logger.info("apple_receipt_sandbox_redirect", is_subscription=is_subscription)
            verification = await self._request(self.sandbox_url, payload)

        logger.info(
            "apple_receipt_verified",
            status=verification.status,
            environment=verification.response.environment,
            in_app_count=len(verification.in_app),
            is_subscription=is_subscription,
        )
        return verification

    async def _request(self, url: str, payload: dict[str, Any]) -> AppleVerification:
        start_time = time.time()
        try:
            response = await self.http_client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json; charset=utf-8"},
            )
        except httpx.HTTPError as exc:
            metrics.record_provider_request(PROVIDER, None, time.time() - start_time)
            logger.error("apple_verify_receipt_transport_failed", url=url, error=str(exc))
            raise TransportError(PROVIDER, str(exc)) from exc

        metrics.record_provider_request(PROVIDER, response.status_code, time.time() - start_time)

        if response.status_code != 200:
            logger.error(
                "apple_verify_receipt_non_200",
                url=url,
                status=response.status_code,
            )
            raise ProviderUnavailableError(PROVIDER, response.status_code)

        raw_body = response.text
        try:
            parsed = parse_verify_receipt_response(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error("apple_verify_receipt_unreadable", url=url, body=raw_body[:200])
            raise ProviderUnavailableError(
                PROVIDER, response.status_code, "unreadable response body"
            ) from exc

        return AppleVerification(response=parsed, raw_body=raw_body)
