"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from pydantic import BaseModel, Field, field_validator

from iap_validation.models.domain import Environment, Store


class ValidatePurchaseRequest(BaseModel):
    """POST /v1/iap/{store}/.../validate request body."""

    user_id: str = Field(..., min_length=1, max_length=255)
    receipt: str = Field(..., min_length=1, max_length=1_000_000)

    @field_validator("receipt")
    @classmethod
    def validate_receipt(cls, v: str) -> str:
        """Reject whitespace-only receipts."""
        if not v.strip():
            raise ValueError("receipt cannot be blank")
        return v


class ValidatedPurchase(BaseModel):
    """A newly persisted purchase, as returned to the caller."""

    product_id: str
    transaction_id: str
    store: Store
    purchase_time: int = Field(..., description="Seconds since epoch when the purchase was made")
    create_time: int = Field(..., description="Seconds since epoch when storage recorded it")
    update_time: int = Field(..., description="Seconds since epoch when storage last updated it")
    provider_response: str = Field(..., description="Raw provider validation response")
    environment: Environment


class ValidatePurchaseResponse(BaseModel):
    """Newly seen validated purchases, in storage order."""

    validated_purchases: list[ValidatedPurchase] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Detail of a failed validation, carried in the HTTPException detail."""

    error: str
    retryable: bool = False


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    version: str
    database: str
