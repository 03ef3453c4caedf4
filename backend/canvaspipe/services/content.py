"""Content URI resolution.

Dereferences the four kinds of asset ``src`` the application produces:
``blob:`` (BlobRegistry), ``data:`` (inline), ``file://`` (MediaStore) and
``http(s)://`` (remote, fetched with httpx).
"""

import base64
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import httpx

from canvaspipe.errors import ContentUnavailableError
from canvaspipe.services.blob_registry import BlobRegistry, is_blob_url

logger = logging.getLogger(__name__)


@dataclass
class FetchedContent:
    data: bytes
    mime_type: str


def decode_data_url(url: str) -> FetchedContent:
    """Decode a ``data:[<mime>][;base64],<payload>`` URI."""
    try:
        header, payload = url[len("data:"):].split(",", 1)
    except ValueError as e:
        raise ContentUnavailableError("Malformed data URL") from e
    parts = header.split(";")
    mime_type = parts[0] or "text/plain"
    if "base64" in parts[1:]:
        try:
            data = base64.b64decode(payload, validate=False)
        except ValueError as e:
            raise ContentUnavailableError("Invalid base64 payload in data URL") from e
    else:
        data = unquote(payload).encode()
    return FetchedContent(data=data, mime_type=mime_type)


def encode_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode()}"


def is_expired_url(url: str, expiring_hosts: Iterable[str] = ()) -> bool:
    """Return True for content URIs that will not survive a restart.

    ``blob:`` and ``data:`` URIs are transient by construction; remote URLs on
    hosts that serve short-lived signed links (e.g. replicate.delivery) expire.
    """
    if url.startswith("blob:") or url.startswith("data:"):
        return True
    host = urlparse(url).hostname or ""
    return any(host == h or host.endswith(f".{h}") for h in expiring_hosts)


class ContentResolver:
    """Fetch asset content from any supported URI scheme."""

    def __init__(
        self,
        blobs: BlobRegistry,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.blobs = blobs
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=httpx.Timeout(60.0, connect=15.0),
            )
        return self._client

    async def fetch(self, url: str) -> FetchedContent:
        """Return the bytes behind ``url``.

        Raises:
            ContentUnavailableError: If the URI is revoked, missing or unreachable.
        """
        if is_blob_url(url):
            entry = self.blobs.resolve(url)
            return FetchedContent(data=entry.data, mime_type=entry.mime_type)

        if url.startswith("data:"):
            return decode_data_url(url)

        parsed = urlparse(url)
        if parsed.scheme == "file":
            path = Path(url2pathname(parsed.path))
            if not path.exists():
                raise ContentUnavailableError(f"File not found: {path}")
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            try:
                data = path.read_bytes()
            except OSError as e:
                raise ContentUnavailableError(f"Cannot read {path}: {e}") from e
            return FetchedContent(data=data, mime_type=mime_type)

        if parsed.scheme in ("http", "https"):
            try:
                response = await self.client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise ContentUnavailableError(f"Failed to fetch {url}: {e}") from e
            mime_type = response.headers.get("content-type", "application/octet-stream").split(";")[0]
            logger.debug("GET %s -> %d bytes", url, len(response.content))
            return FetchedContent(data=response.content, mime_type=mime_type)

        raise ContentUnavailableError(f"Unsupported content URI: {url[:64]}")

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
