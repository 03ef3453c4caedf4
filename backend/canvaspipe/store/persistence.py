"""Snapshot persistence, hydration, retention and expired-asset migration.

The whole ``AppSnapshot`` is written under a single key on every persist.
Write failures are logged and swallowed: in-memory state stays
authoritative and the next successful persist catches up.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError

from canvaspipe.config import MigrationConfig, RetentionConfig, settings
from canvaspipe.db.kv_store import KeyValueStore
from canvaspipe.errors import ContentUnavailableError
from canvaspipe.schemas.media import AppSnapshot, Asset
from canvaspipe.services.blob_registry import BlobRegistry, is_blob_url
from canvaspipe.services.content import ContentResolver, is_expired_url
from canvaspipe.services.imaging import render_gradient_placeholder, to_png_bytes
from canvaspipe.services.media_store import MediaStore
from canvaspipe.store.state import AppState, Clock, utc_now

logger = logging.getLogger(__name__)

DEMO_ASSETS = [
    ("Demo Purple", "#8B5CF6"),
    ("Demo Cyan", "#06B6D4"),
]
DEMO_SIZE = 512


class Cooldown:
    """Rate limiter allowing one attempt per ``interval_seconds``."""

    def __init__(self, interval_seconds: float, clock: Clock = utc_now):
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.last_attempt: Optional[datetime] = None

    def remaining(self) -> float:
        if self.last_attempt is None:
            return 0.0
        elapsed = (self.clock() - self.last_attempt).total_seconds()
        return max(self.interval_seconds - elapsed, 0.0)

    def try_acquire(self) -> bool:
        """Claim an attempt. Returns False while cooling down."""
        if self.remaining() > 0:
            return False
        self.last_attempt = self.clock()
        return True


@dataclass
class StorageReport:
    canvases_removed: int = 0
    steps_removed: int = 0
    assets_migrated: int = 0


@dataclass
class StorageStats:
    assets: int
    steps: int
    canvases: int
    gallery_images: int
    transient_assets: int
    snapshot_bytes: int


class PersistenceLayer:
    def __init__(
        self,
        state: AppState,
        kv_store: KeyValueStore,
        blobs: BlobRegistry,
        resolver: ContentResolver,
        media_store: Optional[MediaStore] = None,
        clock: Clock = utc_now,
        snapshot_key: Optional[str] = None,
        retention: Optional[RetentionConfig] = None,
        migration: Optional[MigrationConfig] = None,
    ):
        self.state = state
        self.kv_store = kv_store
        self.blobs = blobs
        self.resolver = resolver
        self._media_store = media_store
        self.clock = clock
        self.snapshot_key = snapshot_key or settings.storage.snapshot_key
        self.retention = retention or settings.retention
        self.migration = migration or settings.migration
        self.migration_cooldown = Cooldown(self.migration.cooldown_seconds, clock)
        self._hydrating = False
        self._background: set[asyncio.Task] = set()

    @property
    def media_store(self) -> MediaStore:
        # Created lazily so in-memory setups never touch the filesystem
        if self._media_store is None:
            self._media_store = MediaStore()
        return self._media_store

    def serialize(self) -> dict:
        return self.state.to_snapshot().model_dump(mode="json")

    async def persist(self) -> bool:
        """Write the full snapshot. Returns False (after logging) on failure."""
        try:
            await self.kv_store.set(self.snapshot_key, self.serialize())
        except Exception:
            logger.exception("Failed to persist application state")
            return False
        return True

    async def hydrate(self, optimize: bool = True) -> bool:
        """Load the stored snapshot into memory.

        Seeds demo assets when the library is empty and schedules storage
        optimization in the background.

        Returns:
            False when a hydration is already in progress, True otherwise.
        """
        if self._hydrating:
            logger.debug("Hydration already in progress, skipping")
            return False

        self._hydrating = True
        try:
            await self._load()
            if not self.state.assets:
                self._seed_demo_assets()
                await self.persist()
        finally:
            self._hydrating = False

        if optimize:
            task = asyncio.create_task(self.optimize_storage())
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        return True

    async def _load(self) -> None:
        try:
            stored = await self.kv_store.get(self.snapshot_key)
        except Exception:
            logger.exception("Failed to read stored application state")
            return
        if stored is None:
            logger.info("No stored state under '%s', starting fresh", self.snapshot_key)
            return
        try:
            snapshot = AppSnapshot.model_validate(stored)
        except ValidationError:
            logger.exception("Stored application state is corrupt, starting fresh")
            return
        self.state.load_snapshot(snapshot)
        logger.info(
            "Hydrated %d assets, %d steps, %d canvases",
            len(self.state.assets), len(self.state.steps), len(self.state.canvases),
        )

    def _seed_demo_assets(self) -> None:
        for name, color in DEMO_ASSETS:
            data = to_png_bytes(render_gradient_placeholder(color, size=DEMO_SIZE))
            asset = Asset(
                id=str(uuid.uuid4()),
                type="image",
                name=name,
                src=self.blobs.create_url(data, "image/png"),
                meta={"width": DEMO_SIZE, "height": DEMO_SIZE, "demo": True, "mime_type": "image/png"},
                created_at=self.clock(),
                category="generated",
                subcategory="Abstract",
            )
            self.state.assets[asset.id] = asset
        logger.info("Seeded %d demo assets", len(DEMO_ASSETS))

    async def wait_for_background(self) -> None:
        """Await scheduled optimization tasks (used on shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _trim_canvases(self) -> int:
        limit = self.retention.max_canvases
        if len(self.state.canvases) <= limit:
            return 0
        ordered = sorted(self.state.canvases, key=lambda c: c.created_at)
        removed = len(ordered) - limit
        self.state.canvases = ordered[removed:]
        self.state.ensure_active_canvas()
        return removed

    def _trim_steps(self) -> int:
        limit = self.retention.max_steps
        if len(self.state.steps) <= limit:
            return 0
        ordered = sorted(self.state.steps.values(), key=lambda s: s.updated_at, reverse=True)
        self.state.steps = {s.id: s for s in ordered[:limit]}
        return len(ordered) - limit

    async def optimize_storage(self) -> StorageReport:
        """Apply retention limits, migrate expired assets, persist."""
        report = StorageReport(
            canvases_removed=self._trim_canvases(),
            steps_removed=self._trim_steps(),
        )
        report.assets_migrated = await self.migrate_expired_assets()
        await self.persist()
        logger.info(
            "Storage optimized: %d canvases and %d steps pruned, %d assets migrated",
            report.canvases_removed, report.steps_removed, report.assets_migrated,
        )
        return report

    async def migrate_expired_assets(self) -> int:
        """Copy transient asset content into the durable media store.

        Gallery copies with transient content are migrated in the same pass.

        Returns:
            Number of assets migrated (0 while the cooldown is active).
        """
        if not self.migration_cooldown.try_acquire():
            logger.debug(
                "Migration cooling down (%.1fs remaining)", self.migration_cooldown.remaining()
            )
            return 0
        return await self._migrate(lambda src: is_expired_url(src, self.migration.expiring_hosts))

    async def flush_transient(self) -> int:
        """Move all process-local ``blob:`` content to the media store.

        Blob URIs do not outlive the process, so this runs on shutdown and
        ignores the migration cooldown.
        """
        return await self._migrate(is_blob_url)

    async def _migrate(self, is_candidate: Callable[[str], bool]) -> int:
        candidates = [a for a in self.state.assets.values() if is_candidate(a.src)]
        migrated = 0
        for asset in candidates:
            try:
                content = await self.resolver.fetch(asset.src)
                path = self.media_store.save_asset(asset.id, content.data, content.mime_type)
            except (ContentUnavailableError, OSError, ValueError) as e:
                logger.warning("Could not migrate asset %s (%s): %s", asset.id, asset.name, e)
                continue

            current = self.state.assets.get(asset.id)
            if current is None:
                # deleted while its content was being fetched
                continue
            self._replace_src(current, self.media_store.uri_for(path))
            migrated += 1

        # runs after assets so entries sharing an asset's src are already rewritten
        images = [g for g in self.state.gallery_images if is_candidate(g.src)]
        images_migrated = 0
        for image in images:
            try:
                content = await self.resolver.fetch(image.src)
                path = self.media_store.save_gallery_image(image.id, content.data, content.mime_type)
            except (ContentUnavailableError, OSError, ValueError) as e:
                logger.warning("Could not migrate gallery image %s (%s): %s", image.id, image.name, e)
                continue
            old_src, image.src = image.src, self.media_store.uri_for(path)
            if is_blob_url(old_src):
                self.blobs.revoke(old_src)
            images_migrated += 1

        if migrated or images_migrated:
            logger.info(
                "Migrated %d/%d assets and %d/%d gallery images",
                migrated, len(candidates), images_migrated, len(images),
            )
            await self.persist()
        return migrated

    def _replace_src(self, asset: Asset, new_src: str) -> None:
        old_src = asset.src
        meta = dict(asset.meta)
        meta.update(
            original_url=old_src,
            migrated=True,
            migrated_at=self.clock().isoformat(),
        )
        updated = asset.model_copy(update={"src": new_src, "meta": meta})
        self.state.assets[asset.id] = updated

        for canvas in self.state.canvases:
            if canvas.asset is not None and canvas.asset.id == asset.id:
                canvas.asset = updated
        for image in self.state.gallery_images:
            if image.src == old_src:
                image.src = new_src
        if is_blob_url(old_src):
            self.blobs.revoke(old_src)

    def storage_stats(self) -> StorageStats:
        snapshot = self.serialize()
        return StorageStats(
            assets=len(self.state.assets),
            steps=len(self.state.steps),
            canvases=len(self.state.canvases),
            gallery_images=len(self.state.gallery_images),
            transient_assets=sum(
                1 for a in self.state.assets.values()
                if is_expired_url(a.src, self.migration.expiring_hosts)
            ),
            snapshot_bytes=len(json.dumps(snapshot).encode("utf-8")),
        )
