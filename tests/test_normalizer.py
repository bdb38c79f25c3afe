"""
Tests for purchase normalization.
"""

import json
from datetime import UTC, datetime, timedelta

import pytest
from conftest import (
    apple_body,
    apple_in_app,
    google_product_body,
    google_receipt,
    google_subscription_body,
)

from iap_validation.exceptions import InvalidReceiptError
from iap_validation.models.apple import AppleVerification
from iap_validation.models.domain import Environment, Purchase, Store
from iap_validation.models.google_play import (
    GoogleProductVerification,
    GoogleSubscriptionVerification,
)
from iap_validation.services import normalizer
from iap_validation.services.apple_verifier import parse_verify_receipt_response
from iap_validation.services.google_verifier import (
    parse_product_purchase,
    parse_subscription_purchase,
)
from iap_validation.services.receipt_decoder import decode_google_receipt


def apple_verification(**kwargs) -> AppleVerification:
    body = apple_body(**kwargs)
    return AppleVerification(
        response=parse_verify_receipt_response(body), raw_body=json.dumps(body)
    )


class TestTimeConversion:
    """Tests for epoch conversions."""

    def test_parse_millis_is_epoch_offset(self):
        assert normalizer.parse_millis("1607721533824") == datetime(1970, 1, 1, tzinfo=UTC) + (
            timedelta(milliseconds=1607721533824)
        )
        assert normalizer.parse_millis(0) == normalizer.EPOCH

    def test_parse_millis_rejects_garbage(self):
        with pytest.raises(InvalidReceiptError):
            normalizer.parse_millis("soon")

    @pytest.mark.parametrize("value", ["999999999999999999", 10**16, -(10**15)])
    def test_parse_millis_rejects_out_of_range(self, value: int | str):
        with pytest.raises(InvalidReceiptError):
            normalizer.parse_millis(value)

    def test_to_unix_seconds_floors(self):
        moment = normalizer.parse_millis(1607721533999)

        assert normalizer.to_unix_seconds(moment) == 1607721533
        assert normalizer.to_unix_seconds(None) == 0


class TestApple:
    """Tests for Apple normalization."""

    def test_one_purchase_per_entry(self):
        verification = apple_verification(
            environment="Sandbox",
            in_app=[
                apple_in_app(transaction_id="1", product_id="coins_100"),
                apple_in_app(transaction_id="2", product_id="coins_500"),
            ],
        )

        purchases = normalizer.apple_purchases("user-1", "base64-receipt", verification)

        assert [(p.transaction_id, p.product_id) for p in purchases] == [
            ("1", "coins_100"),
            ("2", "coins_500"),
        ]
        for purchase in purchases:
            assert purchase.user_id == "user-1"
            assert purchase.store == Store.APPLE_APP_STORE
            assert purchase.environment == Environment.SANDBOX
            assert purchase.raw_request == "base64-receipt"
            assert purchase.raw_response == verification.raw_body
            assert purchase.purchase_time == normalizer.parse_millis("1607721533000")
            assert purchase.create_time is None

    def test_no_entries(self):
        verification = apple_verification(in_app=[])

        assert normalizer.apple_purchases("user-1", "r", verification) == []

    def test_missing_transaction_id_is_invalid(self):
        verification = apple_verification(in_app=[apple_in_app(transaction_id="")])

        with pytest.raises(InvalidReceiptError):
            normalizer.apple_purchases("user-1", "r", verification)

    @pytest.mark.parametrize(
        "auto_renew_status,expected", [("1", True), ("0", False), (None, False)]
    )
    def test_subscription_auto_renew(self, auto_renew_status: str | None, expected: bool):
        """Only "1" in the first pending renewal entry means renewing."""
        verification = apple_verification(
            in_app=[apple_in_app(auto_renew_status=auto_renew_status)]
        )

        [subscription] = normalizer.apple_subscriptions("user-1", "r", verification)

        assert subscription.auto_renew is expected

    def test_subscription_expiry(self):
        verification = apple_verification(
            in_app=[
                apple_in_app(transaction_id="1", expires_date_ms="1610399933000"),
                apple_in_app(transaction_id="2"),
            ]
        )

        first, second = normalizer.apple_subscriptions("user-1", "r", verification)

        assert first.expires_time == normalizer.parse_millis("1610399933000")
        assert second.expires_time is None


class TestGoogle:
    """Tests for Google normalization."""

    def test_product_purchase(self):
        receipt = google_receipt(purchase_time=1000)
        body = google_product_body(purchase_time_millis="2000")
        verification = GoogleProductVerification(
            response=parse_product_purchase(body),
            receipt=decode_google_receipt(receipt),
            raw_body=json.dumps(body),
        )

        purchase = normalizer.google_purchase("user-1", receipt, verification)

        assert purchase.store == Store.GOOGLE_PLAY_STORE
        assert purchase.transaction_id == "opaque-purchase-token-abc"
        assert purchase.product_id == "coins_100"
        assert purchase.environment == Environment.UNKNOWN
        assert purchase.purchase_time == normalizer.parse_millis(2000)
        assert purchase.raw_request == receipt
        assert purchase.raw_response == verification.raw_body

    def test_product_purchase_time_falls_back_to_receipt(self):
        receipt = google_receipt(purchase_time=1000)
        verification = GoogleProductVerification(
            response=parse_product_purchase(google_product_body(purchase_time_millis=None)),
            receipt=decode_google_receipt(receipt),
            raw_body="{}",
        )

        purchase = normalizer.google_purchase("user-1", receipt, verification)

        assert purchase.purchase_time == normalizer.parse_millis(1000)

    def test_subscription(self):
        receipt = google_receipt(product_id="monthly")
        body = google_subscription_body(
            start_time_millis="3000", expiry_time_millis="9000", auto_renewing=True
        )
        verification = GoogleSubscriptionVerification(
            response=parse_subscription_purchase(body),
            receipt=decode_google_receipt(receipt),
            raw_body=json.dumps(body),
        )

        subscription = normalizer.google_subscription("user-1", receipt, verification)

        assert subscription.auto_renew is True
        assert subscription.expires_time == normalizer.parse_millis(9000)
        assert subscription.purchase.purchase_time == normalizer.parse_millis(3000)
        assert subscription.purchase.product_id == "monthly"


class TestValidatedPurchase:
    """Tests for the outward view."""

    def test_every_field_traces_to_the_record(self):
        created = datetime(2024, 1, 2, 3, 4, 5, 600000, tzinfo=UTC)
        purchase = Purchase(
            user_id="user-1",
            store=Store.APPLE_APP_STORE,
            product_id="coins_100",
            transaction_id="1",
            raw_request="r",
            raw_response='{"status": 0}',
            purchase_time=normalizer.parse_millis(1607721533824),
            environment=Environment.PRODUCTION,
            create_time=created,
            update_time=created + timedelta(seconds=1),
        )

        validated = normalizer.to_validated_purchase(purchase)

        assert validated.product_id == "coins_100"
        assert validated.transaction_id == "1"
        assert validated.store == Store.APPLE_APP_STORE
        assert validated.purchase_time == 1607721533
        assert validated.create_time == int(created.timestamp())
        assert validated.update_time == int(created.timestamp()) + 1
        assert validated.provider_response == '{"status": 0}'
        assert validated.environment == Environment.PRODUCTION
