"""Utility modules for FieldVault."""

from fieldvault.utils.exceptions import (
    CacheError,
    ConfigurationError,
    FieldVaultError,
    NotFoundError,
    StorageError,
    StoreError,
    ValidationError,
    VaultOperationError,
)
from fieldvault.utils.formatting import days_until_expiration, format_bytes, format_relative_time
from fieldvault.utils.id_generator import (
    generate_blob_url,
    generate_history_id,
    generate_session_id,
)
from fieldvault.utils.logger import get_audit_logger, get_logger, setup_logging

__all__ = [
    # Logging
    "get_logger",
    "get_audit_logger",
    "setup_logging",
    # ID Generators
    "generate_blob_url",
    "generate_history_id",
    "generate_session_id",
    # Formatting
    "format_bytes",
    "format_relative_time",
    "days_until_expiration",
    # Exceptions
    "FieldVaultError",
    "StoreError",
    "StorageError",
    "VaultOperationError",
    "ValidationError",
    "NotFoundError",
    "ConfigurationError",
    "CacheError",
]
