"""
ID generation utilities for FieldVault.

Provides consistent ID generation for transient objects:
- Blob handles: blob:fieldvault/xxx
- History entries: hist_xxx
- Archive sessions: sess_xxx
"""

from uuid import uuid4

BLOB_URL_PREFIX = "blob:fieldvault/"


def generate_blob_url() -> str:
    """
    Generate unique blob handle URL.

    Returns:
        URL in format "blob:fieldvault/xxx" where xxx is 32 hex characters
    """
    return f"{BLOB_URL_PREFIX}{uuid4().hex}"


def generate_history_id() -> str:
    """
    Generate unique history entry ID.

    Returns:
        ID in format "hist_xxx" where xxx is 12 hex characters
    """
    return f"hist_{uuid4().hex[:12]}"


def generate_session_id() -> str:
    """
    Generate unique archive session ID.

    Returns:
        ID in format "sess_xxx" where xxx is 12 hex characters
    """
    return f"sess_{uuid4().hex[:12]}"
