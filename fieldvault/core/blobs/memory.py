"""
In-process blob handle allocator.
"""

from fieldvault.core.blobs.base import BlobHandleAllocator
from fieldvault.utils.exceptions import NotFoundError
from fieldvault.utils.id_generator import generate_blob_url
from fieldvault.utils.logger import get_logger

logger = get_logger(__name__)


class InMemoryBlobAllocator(BlobHandleAllocator):
    """Keeps asset bytes in a dict keyed by their blob:fieldvault/ URL."""

    def __init__(self):
        self._blobs: dict[str, bytes] = {}

    def create_handle(self, blob: bytes) -> str:
        url = generate_blob_url()
        self._blobs[url] = blob
        return url

    def release_handle(self, url: str) -> None:
        if url not in self._blobs:
            raise NotFoundError(f"Unknown blob handle: {url}", context={"url": url})
        del self._blobs[url]
        logger.debug(f"Released blob handle {url}")

    def resolve(self, url: str) -> bytes | None:
        """Bytes behind a live handle, or None once released."""
        return self._blobs.get(url)

    @property
    def live_handles(self) -> int:
        return len(self._blobs)
