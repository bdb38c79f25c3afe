"""
API Routes - FastAPI endpoints for receipt validation.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from iap_validation.api.dependencies import get_validation_service
from iap_validation.config import settings
from iap_validation.db.session import get_db
from iap_validation.exceptions import (
    AlreadySeenError,
    CredentialsInvalidError,
    InvalidReceiptError,
    MalformedReceiptError,
    PurchaseValidationError,
    StorageError,
)
from iap_validation.models.api import (
    ErrorResponse,
    HealthResponse,
    ValidatePurchaseRequest,
    ValidatePurchaseResponse,
)
from iap_validation.models.domain import Store
from iap_validation.observability.metrics import metrics
from iap_validation.services.validation import ValidationService

logger = get_logger(__name__)

router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def error_status(exc: PurchaseValidationError) -> int:
    """HTTP status for a validation failure."""
    if isinstance(exc, (MalformedReceiptError, InvalidReceiptError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, AlreadySeenError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, StorageError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, CredentialsInvalidError):
        # Provider not configured on this deployment
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if exc.retryable:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _run(
    service: ValidationService,
    store: Store,
    body: ValidatePurchaseRequest,
    subscription: bool,
) -> ValidatePurchaseResponse:
    try:
        return await service.validate(store, body.user_id, body.receipt, subscription)
    except PurchaseValidationError as exc:
        code = error_status(exc)
        if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            metrics.record_error(type(exc).__name__, f"validate_{store.value}")
        raise HTTPException(
            status_code=code,
            detail=ErrorResponse(error=str(exc), retryable=exc.retryable).model_dump(),
        ) from exc


@router.post(
    "/v1/iap/apple/validate",
    response_model=ValidatePurchaseResponse,
    responses=ERROR_RESPONSES,
)
async def validate_apple_purchase(
    body: ValidatePurchaseRequest,
    service: ValidationService = Depends(get_validation_service),
) -> ValidatePurchaseResponse:
    """
    Validate an App Store receipt for one-time purchases.

    Returns every purchase in the receipt that was not seen before.
    409 when all of them were.
    """
    return await _run(service, Store.APPLE_APP_STORE, body, subscription=False)


@router.post(
    "/v1/iap/apple/subscriptions/validate",
    response_model=ValidatePurchaseResponse,
    responses=ERROR_RESPONSES,
)
async def validate_apple_subscription(
    body: ValidatePurchaseRequest,
    service: ValidationService = Depends(get_validation_service),
) -> ValidatePurchaseResponse:
    """Validate an App Store receipt for auto-renewable subscriptions."""
    return await _run(service, Store.APPLE_APP_STORE, body, subscription=True)


@router.post(
    "/v1/iap/google/validate",
    response_model=ValidatePurchaseResponse,
    responses=ERROR_RESPONSES,
)
async def validate_google_purchase(
    body: ValidatePurchaseRequest,
    service: ValidationService = Depends(get_validation_service),
) -> ValidatePurchaseResponse:
    """
    Validate a Google Play product receipt.

    The receipt is the client purchase envelope: a JSON object whose "json"
    field holds the purchase data string.
    """
    return await _run(service, Store.GOOGLE_PLAY_STORE, body, subscription=False)


@router.post(
    "/v1/iap/google/subscriptions/validate",
    response_model=ValidatePurchaseResponse,
    responses=ERROR_RESPONSES,
)
async def validate_google_subscription(
    body: ValidatePurchaseRequest,
    service: ValidationService = Depends(get_validation_service),
) -> ValidatePurchaseResponse:
    """Validate a Google Play subscription receipt."""
    return await _run(service, Store.GOOGLE_PLAY_STORE, body, subscription=True)


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("health_check_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "version": settings.api_version,
                "database": "disconnected",
            },
        ) from exc

    return HealthResponse(status="healthy", version=settings.api_version, database="connected")
