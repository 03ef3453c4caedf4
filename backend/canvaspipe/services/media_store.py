"""
Durable media storage for canvaspipe.

Writes asset content to the local filesystem so it survives restarts,
with path traversal protection. Migrated and exported assets end up here.
"""
import mimetypes
from pathlib import Path

from canvaspipe.config import settings

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "audio/wav": ".wav",
    "audio/mpeg": ".mp3",
    "video/mp4": ".mp4",
}


def extension_for(mime_type: str) -> str:
    """Map a MIME type to a file extension (defaults to .bin)."""
    if mime_type in _EXTENSIONS:
        return _EXTENSIONS[mime_type]
    return mimetypes.guess_extension(mime_type or "") or ".bin"


class MediaStore:
    """
    Manage durable media files.

    Layout:
    - {base_dir}/assets/{asset_id}{ext} - Durable copies of asset content
    - {base_dir}/gallery/{image_id}{ext} - Durable copies of gallery images
    - {base_dir}/exports/ - Files written by export commands

    Implements path traversal protection to prevent directory escape attacks.
    """

    def __init__(self, base_dir: str | Path | None = None):
        """
        Initialize MediaStore with base directory.

        Args:
            base_dir: Root directory for media files.
                     If None, uses settings.storage.media_dir
        """
        if base_dir is None:
            base_dir = settings.storage.media_dir

        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _subdir(self, name: str) -> Path:
        path = self.base_dir / name
        path.mkdir(exist_ok=True)
        return path

    def _safe_path(self, directory: Path, filename: str) -> Path:
        path = (directory / filename).resolve()
        if not path.is_relative_to(self.base_dir):
            raise ValueError("Invalid media path")
        return path

    def save_asset(self, asset_id: str, data: bytes, mime_type: str) -> Path:
        """
        Save asset content under its id.

        Args:
            asset_id: Asset identifier (used as the file stem)
            data: Raw content bytes
            mime_type: MIME type used to pick the extension

        Returns:
            Path to saved file

        Raises:
            ValueError: If asset_id escapes the base directory
        """
        filepath = self._safe_path(self._subdir("assets"), f"{asset_id}{extension_for(mime_type)}")
        filepath.write_bytes(data)
        return filepath

    def save_gallery_image(self, image_id: str, data: bytes, mime_type: str) -> Path:
        filepath = self._safe_path(self._subdir("gallery"), f"{image_id}{extension_for(mime_type)}")
        filepath.write_bytes(data)
        return filepath

    def save_export(self, filename: str, data: bytes) -> Path:
        filepath = self._safe_path(self._subdir("exports"), filename)
        filepath.write_bytes(data)
        return filepath

    def uri_for(self, path: Path) -> str:
        return path.resolve().as_uri()
