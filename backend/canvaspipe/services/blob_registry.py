"""In-memory registry of transient ``blob:`` content URIs.

Uploaded and locally produced media live here until migrated to the
durable media store. A revoked URI can no longer be dereferenced.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from canvaspipe.errors import ContentUnavailableError

logger = logging.getLogger(__name__)

BLOB_SCHEME = "blob:"
_BLOB_PREFIX = "blob:canvaspipe/"


@dataclass
class BlobEntry:
    data: bytes
    mime_type: str


class BlobRegistry:
    """Allocate, resolve and revoke process-local object URIs."""

    def __init__(self) -> None:
        self._entries: Dict[str, BlobEntry] = {}

    def create_url(self, data: bytes, mime_type: str = "application/octet-stream") -> str:
        url = f"{_BLOB_PREFIX}{uuid.uuid4()}"
        self._entries[url] = BlobEntry(data=data, mime_type=mime_type)
        logger.debug("Allocated %s (%d bytes, %s)", url, len(data), mime_type)
        return url

    def resolve(self, url: str) -> BlobEntry:
        entry = self._entries.get(url)
        if entry is None:
            raise ContentUnavailableError(f"Blob URL is revoked or unknown: {url}")
        return entry

    def get(self, url: str) -> Optional[BlobEntry]:
        return self._entries.get(url)

    def revoke(self, url: str) -> bool:
        """Release a blob URL. Returns True when the URL was live."""
        removed = self._entries.pop(url, None) is not None
        if removed:
            logger.debug("Revoked %s", url)
        return removed

    def owns(self, url: str) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def is_blob_url(url: str) -> bool:
    return url.startswith(BLOB_SCHEME)
