"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class PurchaseRecord(Base):
    """
    ORM model for purchases table.

    One row per provider transaction. (store, transaction_id) is unique and
    is what insert-if-absent conflicts on.
    """

    __tablename__ = "purchases"

    # Primary Key
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    # Identity
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    store: Mapped[str] = mapped_column(String(32), nullable=False)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(4096), nullable=False)

    # Audit payloads
    raw_request: Mapped[str] = mapped_column(Text, nullable=False)
    raw_response: Mapped[str] = mapped_column(Text, nullable=False)

    purchase_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    environment: Mapped[str] = mapped_column(String(16), nullable=False)

    # Timestamps
    create_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    update_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("store", "transaction_id", name="uq_purchases_store_transaction"),
        Index("idx_purchases_product_id", "product_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PurchaseRecord(id={self.id}, store={self.store}, "
            f"transaction_id={self.transaction_id}, product_id={self.product_id})>"
        )


class SubscriptionPurchaseRecord(Base):
    """ORM model for subscription_purchases table."""

    __tablename__ = "subscription_purchases"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    store: Mapped[str] = mapped_column(String(32), nullable=False)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(4096), nullable=False)

    raw_request: Mapped[str] = mapped_column(Text, nullable=False)
    raw_response: Mapped[str] = mapped_column(Text, nullable=False)

    purchase_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    environment: Mapped[str] = mapped_column(String(16), nullable=False)

    # Renewal state
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    create_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    update_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "store", "transaction_id", name="uq_subscription_purchases_store_transaction"
        ),
        Index("idx_subscription_purchases_expires_time", "expires_time"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<SubscriptionPurchaseRecord(id={self.id}, store={self.store}, "
            f"transaction_id={self.transaction_id}, auto_renew={self.auto_renew})>"
        )
