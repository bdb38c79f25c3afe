"""
SQLAlchemy Purchase Storage - PostgreSQL implementation of PurchaseStorage.

Insert-if-absent is a single INSERT ... ON CONFLICT (store, transaction_id)
DO NOTHING RETURNING statement, so concurrent submissions of one receipt
cannot both see their purchase as new.
"""

from dataclasses import replace
from typing import Any

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from iap_validation.db.models import PurchaseRecord, SubscriptionPurchaseRecord
from iap_validation.exceptions import StorageError
from iap_validation.models.domain import Purchase, SubscriptionPurchase

logger = get_logger(__name__)


def _purchase_row(purchase: Purchase) -> dict[str, Any]:
    return {
        "user_id": purchase.user_id,
        "store": purchase.store.value,
        "product_id": purchase.product_id,
        "transaction_id": purchase.transaction_id,
        "raw_request": purchase.raw_request,
        "raw_response": purchase.raw_response,
        "purchase_time": purchase.purchase_time,
        "environment": purchase.environment.value,
    }


class SQLAlchemyPurchaseStorage:
    """Purchase storage bound to one async session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def store_purchases(self, purchases: list[Purchase]) -> list[Purchase]:
        """Insert unseen purchases and return them stamped with storage times."""
        if not purchases:
            return []

        stamps = await self._insert(PurchaseRecord, [_purchase_row(p) for p in purchases])
        stored: list[Purchase] = []
        for purchase in purchases:
            stamp = stamps.pop(purchase.transaction_id, None)
            if stamp is None:
                continue
            stored.append(replace(purchase, create_time=stamp[0], update_time=stamp[1]))
        return stored

    async def store_subscription_purchases(
        self, purchases: list[SubscriptionPurchase]
    ) -> list[SubscriptionPurchase]:
        """Insert unseen subscription purchases and return them stamped."""
        if not purchases:
            return []

        rows = [
            {
                **_purchase_row(s.purchase),
                "auto_renew": s.auto_renew,
                "expires_time": s.expires_time,
            }
            for s in purchases
        ]
        stamps = await self._insert(SubscriptionPurchaseRecord, rows)
        stored: list[SubscriptionPurchase] = []
        for subscription in purchases:
            stamp = stamps.pop(subscription.purchase.transaction_id, None)
            if stamp is None:
                continue
            stamped = replace(
                subscription.purchase, create_time=stamp[0], update_time=stamp[1]
            )
            stored.append(replace(subscription, purchase=stamped))
        return stored

    async def _insert(
        self,
        model: type[PurchaseRecord] | type[SubscriptionPurchaseRecord],
        rows: list[dict[str, Any]],
    ) -> dict[str, tuple[Any, Any]]:
        """Run the conflict-skipping insert; map transaction_id to (create, update) times."""
        # Rows of one call share a store, so transaction_id alone identifies them.
        stmt = (
            insert(model)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["store", "transaction_id"])
            .returning(model.transaction_id, model.create_time, model.update_time)
        )
        try:
            result = await self.session.execute(stmt)
            inserted = {row[0]: (row[1], row[2]) for row in result.all()}
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "purchase_storage_failed",
                table=model.__tablename__,
                rows=len(rows),
                error=str(e),
            )
            raise StorageError(f"failed to store {model.__tablename__}: {e}") from e

        logger.info(
            "purchases_inserted",
            table=model.__tablename__,
            submitted=len(rows),
            inserted=len(inserted),
        )
        return inserted
