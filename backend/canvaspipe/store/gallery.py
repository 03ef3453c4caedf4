"""Bounded gallery of promoted assets."""

import logging
import uuid
from typing import Any, Optional

from canvaspipe.config import settings
from canvaspipe.schemas.media import GalleryImage
from canvaspipe.services.blob_registry import BlobRegistry, is_blob_url
from canvaspipe.store.persistence import PersistenceLayer
from canvaspipe.store.state import AppState, Clock, utc_now

logger = logging.getLogger(__name__)


class GalleryStore:
    """Gallery entries are detached copies that outlive their source asset."""

    def __init__(
        self,
        state: AppState,
        persistence: PersistenceLayer,
        blobs: BlobRegistry,
        clock: Clock = utc_now,
        max_images: Optional[int] = None,
    ):
        self.state = state
        self.persistence = persistence
        self.blobs = blobs
        self.clock = clock
        self.max_images = max_images if max_images is not None else settings.retention.max_gallery_images

    def _detached_src(self, src: str) -> str:
        # A blob URI is revoked when its asset is deleted; give the copy its own
        if is_blob_url(src):
            entry = self.blobs.get(src)
            if entry is not None:
                return self.blobs.create_url(entry.data, entry.mime_type)
        return src

    def _evict(self) -> None:
        images = self.state.gallery_images
        while len(images) > self.max_images:
            # oldest non-favorite first, then oldest overall
            victim = next((g for g in reversed(images) if not g.favorite), images[-1])
            images.remove(victim)
            if is_blob_url(victim.src):
                self.blobs.revoke(victim.src)
            logger.debug("Evicted gallery image %s", victim.id)

    async def add_to_gallery(
        self,
        asset_id: str,
        prompt: Optional[str] = None,
        model: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
        category: Optional[str] = None,
    ) -> Optional[GalleryImage]:
        asset = self.state.assets.get(asset_id)
        if asset is None:
            logger.warning("Cannot add unknown asset %s to gallery", asset_id)
            return None

        image = GalleryImage(
            id=str(uuid.uuid4()),
            asset_id=asset.id,
            name=asset.name,
            src=self._detached_src(asset.src),
            type=asset.type,
            prompt=prompt if prompt is not None else asset.meta.get("prompt"),
            model=model if model is not None else asset.meta.get("provider"),
            parameters=dict(parameters or {}),
            category=category or asset.category,
            created_at=self.clock(),
        )
        self.state.gallery_images.insert(0, image)
        self._evict()
        await self.persistence.persist()
        return image

    async def remove_from_gallery(self, image_id: str) -> bool:
        image = next((g for g in self.state.gallery_images if g.id == image_id), None)
        if image is None:
            return False
        self.state.gallery_images.remove(image)
        if is_blob_url(image.src):
            self.blobs.revoke(image.src)
        await self.persistence.persist()
        return True

    async def toggle_favorite(self, image_id: str) -> Optional[bool]:
        image = next((g for g in self.state.gallery_images if g.id == image_id), None)
        if image is None:
            return None
        image.favorite = not image.favorite
        await self.persistence.persist()
        return image.favorite

    def list_gallery(self, favorites_only: bool = False) -> list[GalleryImage]:
        return [g for g in self.state.gallery_images if g.favorite or not favorites_only]
