"""
Tests for ID generation utilities.

Tests cover:
1. Blob handle URLs
2. History entry IDs
3. Session IDs
4. Uniqueness guarantees
"""

from fieldvault.utils import generate_blob_url, generate_history_id, generate_session_id


class TestGenerateBlobUrl:
    """Tests for blob handle URL generation."""

    def test_format(self):
        """Test blob URL format: blob:fieldvault/xxx (32 hex chars)."""
        url = generate_blob_url()

        assert url.startswith("blob:fieldvault/")
        assert len(url) == len("blob:fieldvault/") + 32

    def test_uniqueness(self):
        urls = [generate_blob_url() for _ in range(1000)]
        assert len(urls) == len(set(urls))


class TestGenerateHistoryId:
    """Tests for history entry ID generation."""

    def test_format(self):
        """Test history ID format: hist_xxx (12 hex chars)."""
        history_id = generate_history_id()

        assert history_id.startswith("hist_")
        assert len(history_id) == 17
        assert history_id[5:].isalnum()

    def test_uniqueness(self):
        ids = [generate_history_id() for _ in range(1000)]
        assert len(ids) == len(set(ids))


class TestGenerateSessionId:
    """Tests for session ID generation."""

    def test_format(self):
        """Test session ID format: sess_xxx (12 hex chars)."""
        session_id = generate_session_id()

        assert session_id.startswith("sess_")
        assert len(session_id) == 17

    def test_consistent_prefix(self):
        ids = [generate_session_id() for _ in range(100)]
        assert all(i.startswith("sess_") for i in ids)
