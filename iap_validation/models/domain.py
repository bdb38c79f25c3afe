"""
Domain Models - Internal purchase records using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol


class Store(str, Enum):
    """Validation provider."""

    APPLE_APP_STORE = "apple_app_store"
    GOOGLE_PLAY_STORE = "google_play_store"


class Environment(str, Enum):
    """Environment where the purchase took place."""

    UNKNOWN = "unknown"
    SANDBOX = "sandbox"
    PRODUCTION = "production"


@dataclass(frozen=True)
class Purchase:
    """
    Canonical purchase record handed to storage.

    (store, transaction_id) is the dedup key. Both values are forwarded from
    the provider, never generated here. create_time/update_time stay None
    until storage stamps them.
    """

    user_id: str
    store: Store
    product_id: str
    transaction_id: str
    raw_request: str
    raw_response: str
    purchase_time: datetime
    environment: Environment
    create_time: datetime | None = None
    update_time: datetime | None = None

    def __post_init__(self) -> None:
        """Validate purchase identity fields."""
        if not self.transaction_id:
            raise ValueError("transaction_id cannot be empty")
        if not self.product_id:
            raise ValueError("product_id cannot be empty")

    @property
    def dedup_key(self) -> tuple[Store, str]:
        """Natural key storage deduplicates on."""
        return (self.store, self.transaction_id)


@dataclass(frozen=True)
class SubscriptionPurchase:
    """A purchase plus renewal metadata."""

    purchase: Purchase
    auto_renew: bool
    expires_time: datetime | None


class ProviderVerification(Protocol):
    """
    Capability shared by every provider verification result.

    status is the provider verdict (0 = valid), raw_body the verbatim
    provider response kept for audit.
    """

    @property
    def status(self) -> int: ...

    @property
    def environment(self) -> Environment: ...

    @property
    def raw_body(self) -> str: ...
