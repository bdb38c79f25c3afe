"""
Google OAuth access tokens for the Android Publisher API.

Service-account credentials are exchanged for a bearer token by google-auth
(JWT-bearer grant against Google's token endpoint). The refresh is blocking,
so it runs in a worker thread.

One provider instance is shared by the whole process. Credentials are cached
per service account key and refreshed shortly before their token expires. The
cache is guarded by an asyncio lock so concurrent validations trigger a single
token request.
"""

import asyncio
import hashlib
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import google.auth.transport.requests
from google.auth import exceptions as google_auth_exceptions
from google.auth import transport
from google.oauth2 import service_account
from structlog import get_logger

from iap_validation.exceptions import CredentialsInvalidError, TokenAcquisitionError
from iap_validation.observability.metrics import metrics

logger = get_logger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

REFRESH_BUFFER = timedelta(seconds=300)


def utcnow() -> datetime:
    """Naive UTC now, comparable with google-auth credential expiry."""
    return datetime.now(UTC).replace(tzinfo=None)


def token_is_fresh(credentials: service_account.Credentials, now: datetime) -> bool:
    """Check if the credentials hold a token usable past the refresh buffer."""
    if not credentials.token:
        return False
    if credentials.expiry is None:
        return True
    return now < credentials.expiry - REFRESH_BUFFER


class GoogleTokenProvider:
    """Exchanges service-account credentials for Android Publisher bearer tokens."""

    def __init__(
        self,
        token_url: str = GOOGLE_TOKEN_URL,
        auth_request: transport.Request | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.token_url = token_url
        self.auth_request = auth_request or google.auth.transport.requests.Request()
        self._clock = clock
        self._cache: dict[tuple[str, str], service_account.Credentials] = {}
        self._lock = asyncio.Lock()

    async def token(self, client_email: str, private_key: str) -> str:
        """
        Get a bearer token for the given service account.

        Returns the cached token while it is fresh, otherwise refreshes it.

        Raises:
            CredentialsInvalidError: If client_email or private_key is empty
            TokenAcquisitionError: If the key cannot be loaded or the token
                endpoint does not issue a token
        """
        if not client_email:
            raise CredentialsInvalidError("'client_email' is empty")
        if not private_key:
            raise CredentialsInvalidError("'private_key' is empty")

        # A rotated key under the same account gets its own entry
        key = (client_email, hashlib.sha256(private_key.encode()).hexdigest())

        cached = self._cache.get(key)
        if cached and token_is_fresh(cached, self._clock()):
            return str(cached.token)

        async with self._lock:
            # Another task may have refreshed while we waited
            cached = self._cache.get(key)
            if cached and token_is_fresh(cached, self._clock()):
                return str(cached.token)

            credentials = cached or self._load_credentials(client_email, private_key)
            await self._refresh(credentials, client_email)
            self._cache[key] = credentials
            return str(credentials.token)

    def clear(self) -> None:
        """Drop all cached credentials."""
        self._cache.clear()

    def _load_credentials(
        self, client_email: str, private_key: str
    ) -> service_account.Credentials:
        """Build service-account credentials scoped to the Android Publisher API."""
        info = {
            "client_email": client_email,
            # Keys copied from service-account JSON into env vars keep escaped newlines
            "private_key": private_key.replace("\\n", "\n"),
            "token_uri": self.token_url,
        }
        try:
            return service_account.Credentials.from_service_account_info(
                info, scopes=[ANDROID_PUBLISHER_SCOPE]
            )
        except ValueError as exc:
            logger.error("google_credentials_load_failed", client_email=client_email)
            raise TokenAcquisitionError(f"cannot load service account key: {exc}") from exc

    async def _refresh(self, credentials: service_account.Credentials, client_email: str) -> None:
        logger.info("google_token_requested", client_email=client_email)

        try:
            await asyncio.to_thread(credentials.refresh, self.auth_request)
        except (
            google_auth_exceptions.RefreshError,
            google_auth_exceptions.TransportError,
        ) as exc:
            logger.error("google_token_refresh_failed", client_email=client_email, error=str(exc))
            raise TokenAcquisitionError(f"token refresh failed: {exc}") from exc

        metrics.record_token_refresh()
        logger.info(
            "google_token_refreshed",
            client_email=client_email,
            expiry=credentials.expiry.isoformat() if credentials.expiry else None,
        )
