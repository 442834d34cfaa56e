"""Error taxonomy for the retrieval engine.

Every error carries an ``ErrorType`` so callers (CLI, message handlers) can
map failures to user-facing outcomes without matching on class names.
"""

from enum import Enum
from typing import Any, Optional


class ErrorType(str, Enum):
    """Categories of engine errors."""

    AI_API_NOT_AVAILABLE = "AI_API_NOT_AVAILABLE"
    NO_PROVIDER = "NO_PROVIDER"
    DIMENSION_MISMATCH = "DIMENSION_MISMATCH"
    ENCRYPTION_ERROR = "ENCRYPTION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    INVALID_INPUT = "INVALID_INPUT"


class BrainError(Exception):
    """Base class for all engine errors."""

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message


class ProviderUnavailable(BrainError):
    """A provider lacks, or lost, the capability for an operation."""

    def __init__(self, provider: str, capability: str, details: Optional[Any] = None):
        super().__init__(
            ErrorType.AI_API_NOT_AVAILABLE,
            f"{provider} cannot serve '{capability}'",
            details,
        )
        self.provider = provider
        self.capability = capability


class NoProviderAvailable(BrainError):
    """No configured provider can serve an operation."""

    def __init__(self, capability: str):
        super().__init__(
            ErrorType.NO_PROVIDER,
            f"No AI provider available for {capability}",
        )
        self.capability = capability


class DimensionMismatch(BrainError):
    """Two vectors of unequal length were compared."""

    def __init__(self, left: int, right: int):
        super().__init__(
            ErrorType.DIMENSION_MISMATCH,
            f"Vectors must have the same length (got {left} and {right})",
        )
        self.left = left
        self.right = right


class DecryptionFailure(BrainError):
    """Ciphertext could not be decrypted."""

    def __init__(self, message: str = "Failed to decrypt data", details: Optional[Any] = None):
        super().__init__(ErrorType.ENCRYPTION_ERROR, message, details)


class StorageError(BrainError):
    """The storage collaborator failed."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(ErrorType.DATABASE_ERROR, message, details)
