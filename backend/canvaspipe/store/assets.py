"""Asset store mutators.

Every mutator changes ``AppState`` synchronously and then flushes the whole
snapshot through the persistence layer.
"""

import logging
import mimetypes
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from PIL import UnidentifiedImageError

from canvaspipe.errors import ContentUnavailableError
from canvaspipe.schemas.media import Asset
from canvaspipe.services.blob_registry import BlobRegistry, is_blob_url
from canvaspipe.services.content import ContentResolver
from canvaspipe.services.imaging import load_image
from canvaspipe.services.notifications import LoggingNotifier, Notifier
from canvaspipe.store.persistence import PersistenceLayer
from canvaspipe.store.state import AppState, Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ExportedAsset:
    name: str
    data: bytes
    mime_type: str


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" + ("" if count == 1 else "s")


def _media_type_for(mime_type: str) -> str:
    if mime_type == "image/gif":
        return "animation"
    if mime_type.startswith("audio/"):
        return "audio"
    if mime_type.startswith("video/"):
        return "animation"
    return "image"


class AssetStore:
    """Owns asset insertion, deletion, selection and export."""

    def __init__(
        self,
        state: AppState,
        persistence: PersistenceLayer,
        blobs: BlobRegistry,
        resolver: ContentResolver,
        notifier: Optional[Notifier] = None,
        clock: Clock = utc_now,
    ):
        self.state = state
        self.persistence = persistence
        self.blobs = blobs
        self.resolver = resolver
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.clock = clock

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        return self.state.assets.get(asset_id)

    def list_assets(self, category: Optional[str] = None) -> list[Asset]:
        """Assets newest first, optionally filtered by category."""
        assets = [
            a for a in self.state.assets.values()
            if category is None or a.category == category
        ]
        return sorted(assets, key=lambda a: a.created_at, reverse=True)

    async def add_asset(self, asset: Asset) -> Asset:
        self.state.assets[asset.id] = asset
        await self.persistence.persist()
        return asset

    async def add_assets(self, assets: Iterable[Asset]) -> list[Asset]:
        added = []
        for asset in assets:
            self.state.assets[asset.id] = asset
            added.append(asset)
        await self.persistence.persist()
        return added

    async def delete_assets(self, asset_ids: Iterable[str]) -> list[str]:
        """Delete assets, releasing their blob URIs.

        Canvases and gallery entries that reference a deleted asset keep
        their own copy and are not touched.

        Returns:
            Ids that were actually removed.
        """
        removed = []
        for asset_id in asset_ids:
            asset = self.state.assets.pop(asset_id, None)
            if asset is None:
                continue
            if is_blob_url(asset.src):
                self.blobs.revoke(asset.src)
            removed.append(asset_id)

        if removed:
            gone = set(removed)
            self.state.selected_asset_ids = [
                i for i in self.state.selected_asset_ids if i not in gone
            ]
            logger.info("Deleted %d asset(s)", len(removed))
        await self.persistence.persist()
        if removed:
            self.notifier.success(f"Deleted {_plural(len(removed), 'asset')}")
        return removed

    async def delete_asset(self, asset_id: str) -> bool:
        return bool(await self.delete_assets([asset_id]))

    async def update_asset_category(
        self,
        asset_id: str,
        category: Optional[str],
        subcategory: Optional[str] = None,
    ) -> Optional[Asset]:
        """Patch category/subcategory only. Returns None for an unknown id."""
        asset = self.state.assets.get(asset_id)
        if asset is None:
            logger.warning("Cannot categorize unknown asset %s", asset_id)
            return None
        updated = asset.model_copy(update={"category": category, "subcategory": subcategory})
        self.state.assets[asset_id] = updated
        await self.persistence.persist()
        return updated

    def set_selected(self, asset_ids: Iterable[str]) -> list[str]:
        self.state.selected_asset_ids = list(asset_ids)
        return self.state.selected_asset_ids

    @property
    def selected_assets(self) -> list[Asset]:
        return [
            self.state.assets[i] for i in self.state.selected_asset_ids
            if i in self.state.assets
        ]

    async def export_assets(self, asset_ids: Iterable[str]) -> list[ExportedAsset]:
        """Fetch content for each asset; unresolvable items are skipped."""
        exported = []
        failed = 0
        for asset_id in asset_ids:
            asset = self.state.assets.get(asset_id)
            if asset is None:
                logger.warning("Export skipped unknown asset %s", asset_id)
                failed += 1
                continue
            try:
                content = await self.resolver.fetch(asset.src)
            except (ContentUnavailableError, OSError) as e:
                logger.warning("Export failed for %s (%s): %s", asset.name, asset_id, e)
                failed += 1
                continue
            exported.append(ExportedAsset(name=asset.name, data=content.data, mime_type=content.mime_type))

        if exported:
            self.notifier.success(f"Exported {_plural(len(exported), 'asset')}")
        if failed:
            self.notifier.error(f"Failed to export {_plural(failed, 'asset')}")
        return exported

    async def import_file(
        self,
        source: Union[str, Path, bytes],
        name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Asset:
        """Register uploaded bytes as a ``blob:`` asset in the uploaded category."""
        if isinstance(source, (str, Path)):
            path = Path(source)
            data = path.read_bytes()
            name = name or path.stem
            mime_type = mime_type or mimetypes.guess_type(path.name)[0]
        else:
            data = source
        mime_type = mime_type or "image/png"

        meta = {"mime_type": mime_type, "size": len(data)}
        media_type = _media_type_for(mime_type)
        if media_type != "audio":
            try:
                img = load_image(data)
                meta.update(width=img.width, height=img.height)
            except (UnidentifiedImageError, OSError):
                logger.debug("Could not read dimensions for upload %s", name)

        asset = Asset(
            id=str(uuid.uuid4()),
            type=media_type,
            name=name or "Upload",
            src=self.blobs.create_url(data, mime_type),
            meta=meta,
            created_at=self.clock(),
            category="uploaded",
        )
        return await self.add_asset(asset)
