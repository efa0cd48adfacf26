"""Exception hierarchy for enhancement, ledger and webhook failures."""

from uuid import UUID


class EnhancementError(Exception):
    """Base error for the enhancement pipeline.

    ``reason`` is the human-readable text recorded on a failed photo and
    ``retryable`` tells the retry policy whether another attempt may help.
    """

    code = "ENHANCEMENT_FAILED"
    retryable = False

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ValidationError(EnhancementError):
    """Source image failed size or type validation."""

    code = "INVALID_IMAGE"


class ImageFetchError(EnhancementError):
    """Source image could not be downloaded."""

    code = "IMAGE_FETCH_FAILED"


class StepTimeoutError(EnhancementError):
    """A pipeline step exceeded its deadline."""

    code = "PROCESSING_TIMEOUT"
    retryable = True

    def __init__(self, step: str, seconds: float) -> None:
        self.step = step
        self.seconds = seconds
        super().__init__(f"{step} timed out after {seconds:g}s")


class ProviderError(EnhancementError):
    """AI provider rejected the request or returned unusable output."""

    code = "AI_SERVICE_ERROR"

    def __init__(self, reason: str, *, retryable: bool = True) -> None:
        super().__init__(reason)
        self.retryable = retryable


class EmptyGenerationError(ProviderError):
    """AI provider returned no image payload."""

    def __init__(self) -> None:
        super().__init__("AI provider returned no enhanced image")


class StorageError(EnhancementError):
    """Uploading the generated artifact failed."""

    code = "STORAGE_FAILED"
    retryable = True


class NotFoundError(EnhancementError):
    """Photo is missing or belongs to another account."""

    code = "PHOTO_NOT_FOUND"

    def __init__(self, photo_id: UUID) -> None:
        self.photo_id = photo_id
        super().__init__(f"Photo {photo_id} not found")


class StateError(EnhancementError):
    """Photo is not in a state that allows the requested transition."""

    code = "INVALID_STATE"


class LedgerError(Exception):
    """Base error for credit ledger operations."""


class InsufficientCreditsError(LedgerError):
    """Raised when an account has no spending capacity left."""

    code = "INSUFFICIENT_CREDITS"

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient credits. Balance: {balance}, Required: {required}"
        )


class AccountNotFoundError(LedgerError):
    """Raised when an account does not exist."""

    code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: UUID) -> None:
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class WebhookError(Exception):
    """Payment event was malformed, unauthenticated or unapplicable."""
