"""
Purchase Storage Protocol - the persistence contract validation relies on.

Storage is the only idempotency authority: it inserts candidates that are not
yet known by (store, transaction_id) and returns exactly those, stamped with
create_time/update_time. Known purchases are silently left out, never an
error.
"""

from typing import Protocol

from iap_validation.models.domain import Purchase, SubscriptionPurchase


class PurchaseStorage(Protocol):
    """
    Purchase storage protocol.

    Implementations must make insert-if-absent atomic so that concurrent
    submissions of the same receipt yield exactly one new record.
    """

    async def store_purchases(self, purchases: list[Purchase]) -> list[Purchase]:
        """
        Persist one-time purchases.

        Returns:
            The newly inserted purchases, stamped by storage

        Raises:
            StorageError: If persistence fails
        """
        ...

    async def store_subscription_purchases(
        self, purchases: list[SubscriptionPurchase]
    ) -> list[SubscriptionPurchase]:
        """
        Persist subscription purchases.

        Returns:
            The newly inserted subscription purchases, stamped by storage

        Raises:
            StorageError: If persistence fails
        """
        ...

