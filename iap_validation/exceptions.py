"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Every error is terminal for the validation call that raised it. The
``retryable`` flag tells callers whether submitting the same receipt later
can succeed (provider outage, transient rejection) or not (fraud, client bug).
"""


class PurchaseValidationError(Exception):
    """Base exception for all purchase validation errors."""

    retryable: bool = False


class TransportError(PurchaseValidationError):
    """Raised when a provider cannot be reached (connection failure, timeout)."""

    retryable = True

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        self.message = message
        super().__init__(f"Transport error reaching {provider}: {message}")


class ProviderUnavailableError(PurchaseValidationError):
    """Raised when a provider answers with a non-200 status or an unreadable body."""

    retryable = True

    def __init__(self, provider: str, status_code: int | None, message: str = "") -> None:
        self.provider = provider
        self.status_code = status_code
        self.message = message
        detail = f" ({message})" if message else ""
        super().__init__(f"{provider} unavailable, HTTP status {status_code}{detail}")


class RetryableVerificationError(PurchaseValidationError):
    """Raised when Apple rejects a receipt but marks the failure as transient."""

    retryable = True

    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(f"Receipt verification temporarily unavailable, status {status}")


class TokenAcquisitionError(PurchaseValidationError):
    """Raised when a Google OAuth access token cannot be obtained."""

    retryable = True

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Token acquisition failed: {message}")


class InvalidReceiptError(PurchaseValidationError):
    """Raised when a receipt is permanently rejected."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.message = message
        self.status = status
        super().__init__(f"Invalid receipt: {message}")


class MalformedReceiptError(PurchaseValidationError):
    """Raised when the receipt payload itself cannot be decoded."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Malformed receipt: {message}")


class CredentialsInvalidError(PurchaseValidationError):
    """Raised when provider credentials are missing."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid credentials: {message}")


class AlreadySeenError(PurchaseValidationError):
    """Raised when storage reports that no submitted purchase was new."""

    def __init__(self, submitted: int) -> None:
        self.submitted = submitted
        super().__init__(f"Purchase receipt already seen ({submitted} purchases submitted)")


class StorageError(PurchaseValidationError):
    """Raised when the storage collaborator fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Storage error: {message}")
