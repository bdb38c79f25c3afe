"""
FastAPI Dependencies - wiring of the validation service per request.

The HTTP client and the Google token provider live on app.state for the
whole process; storage is bound to the request's database session.
"""

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from iap_validation.config import settings
from iap_validation.db.session import get_db
from iap_validation.db.storage import SQLAlchemyPurchaseStorage
from iap_validation.services.apple_verifier import AppleVerifierClient
from iap_validation.services.google_token import GoogleTokenProvider
from iap_validation.services.google_verifier import GoogleVerifierClient
from iap_validation.services.storage import PurchaseStorage
from iap_validation.services.validation import ValidationService


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared outbound HTTP client created in the application lifespan."""
    return request.app.state.http_client  # type: ignore[no-any-return]


def get_token_provider(request: Request) -> GoogleTokenProvider:
    """Process-wide Google access token cache."""
    return request.app.state.token_provider  # type: ignore[no-any-return]


def get_purchase_storage(db: AsyncSession = Depends(get_db)) -> PurchaseStorage:
    """PostgreSQL storage bound to the request session."""
    return SQLAlchemyPurchaseStorage(db)


def get_validation_service(
    http_client: httpx.AsyncClient = Depends(get_http_client),
    token_provider: GoogleTokenProvider = Depends(get_token_provider),
    storage: PurchaseStorage = Depends(get_purchase_storage),
) -> ValidationService:
    """
    Build the validation service from settings.

    Usage:
        @router.post("/v1/iap/apple/validate")
        async def validate(service: ValidationService = Depends(get_validation_service)):
            ...
    """
    return ValidationService(
        storage=storage,
        apple_client=AppleVerifierClient(
            http_client,
            production_url=settings.apple_production_url,
            sandbox_url=settings.apple_sandbox_url,
        ),
        google_client=GoogleVerifierClient(
            http_client,
            token_provider,
            base_url=settings.android_publisher_base_url,
        ),
        apple_password=settings.apple_shared_secret,
        google_client_email=settings.google_client_email,
        google_private_key=settings.google_private_key,
    )
