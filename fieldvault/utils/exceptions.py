"""
Custom exception hierarchy for FieldVault.

Provides structured error types for better error handling and debugging.
All exceptions inherit from FieldVaultError for easy catching.
"""


class FieldVaultError(Exception):
    """
    Base exception for all FieldVault errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize FieldVault error.
        Args:
            message: Error message
            context: Optional context dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class StoreError(FieldVaultError):
    """
    Base exception for store operations.
    Used for errors related to data storage operations.
    """

    pass


class StorageError(StoreError):
    """
    Persistent resource storage errors.
    Raised when the block storage backend fails to read or write.
    """

    pass


class VaultOperationError(StoreError):
    """
    Vault mutation rejected by a graph rule.

    Carries the ErrorKind so the public vault functions can turn it into a
    typed OperationResult instead of letting it escape.
    """

    def __init__(
        self,
        kind,
        message: str,
        context: dict | None = None,
        invalid_ids: list[str] | None = None,
    ):
        super().__init__(message, context)
        self.kind = kind
        self.invalid_ids = invalid_ids or []


class ValidationError(FieldVaultError):
    """
    Validation errors.
    Raised when input validation fails or data is invalid.
    """

    pass


class NotFoundError(FieldVaultError):
    """
    Resource not found errors.
    Raised when a requested resource doesn't exist.
    """

    pass


class ConfigurationError(FieldVaultError):
    """
    Configuration errors.
    Raised when configuration is invalid or missing required values.
    """

    pass


class CacheError(FieldVaultError):
    """
    Resource cache errors.
    Raised for misuse of the cache or blob handle bookkeeping.
    """

    pass
