"""MediaEditor: the wired application object.

Owns one ``AppState`` and the services that share it. Collaborators
(key-value store, provider registry, blob registry, media store, notifier,
clock) are injected; ``MediaEditor.create()`` builds the configured
defaults.
"""

import asyncio
import logging
from typing import Any, Optional

from canvaspipe.config import settings
from canvaspipe.db.kv_store import KeyValueStore, MemoryKeyValueStore
from canvaspipe.errors import MissingInputAssetError
from canvaspipe.orchestrator.engine import StepEngine
from canvaspipe.schemas.media import Asset, PipelineStep, StepKind
from canvaspipe.services.blob_registry import BlobRegistry
from canvaspipe.services.content import ContentResolver
from canvaspipe.services.mask_processor import MaskSource, check_submission, normalize_mask
from canvaspipe.services.media_store import MediaStore
from canvaspipe.services.notifications import LoggingNotifier, Notifier
from canvaspipe.services.providers.registry import ProviderRegistry, default_registry
from canvaspipe.store.assets import AssetStore
from canvaspipe.store.canvases import CanvasRegistry
from canvaspipe.store.gallery import GalleryStore
from canvaspipe.store.persistence import PersistenceLayer
from canvaspipe.store.state import AppState, Clock, utc_now

logger = logging.getLogger(__name__)

MASKED_EDIT_PROVIDER = "replicate.flux-inpaint"


class MediaEditor:
    def __init__(
        self,
        kv_store: KeyValueStore,
        providers: Optional[ProviderRegistry] = None,
        blobs: Optional[BlobRegistry] = None,
        resolver: Optional[ContentResolver] = None,
        media_store: Optional[MediaStore] = None,
        notifier: Optional[Notifier] = None,
        clock: Clock = utc_now,
    ):
        self.state = AppState()
        self.kv_store = kv_store
        self.blobs = blobs if blobs is not None else BlobRegistry()
        self.resolver = resolver if resolver is not None else ContentResolver(self.blobs)
        self.providers = providers if providers is not None else default_registry(self.resolver, self.blobs)
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.clock = clock

        self.persistence = PersistenceLayer(
            self.state, kv_store, self.blobs, self.resolver, media_store=media_store, clock=clock
        )
        self.assets = AssetStore(
            self.state, self.persistence, self.blobs, self.resolver, notifier=self.notifier, clock=clock
        )
        self.gallery = GalleryStore(self.state, self.persistence, self.blobs, clock=clock)
        self.canvases = CanvasRegistry(self.state, self.persistence, clock=clock)
        self.engine = StepEngine(self.state, self.providers, self.persistence, notifier=self.notifier, clock=clock)

    @classmethod
    async def create(
        cls,
        database_url: Optional[str] = None,
        in_memory: bool = False,
        hydrate: bool = True,
        **kwargs: Any,
    ) -> "MediaEditor":
        """Build an editor on the configured durable store and hydrate it."""
        if in_memory:
            kv_store: KeyValueStore = MemoryKeyValueStore()
        else:
            from canvaspipe.db import init_database
            kv_store = await init_database(database_url)
        editor = cls(kv_store, **kwargs)
        if hydrate:
            await editor.hydrate()
        return editor

    async def close(self) -> None:
        """Finish background work, move blob content to disk, release clients."""
        await self.persistence.wait_for_background()
        await self.persistence.flush_transient()
        await self.resolver.close()
        close = getattr(self.kv_store, "close", None)
        if close is not None:
            await close()

    # Engine

    def enqueue_step(self, kind, input_asset_ids, params, provider_key: str) -> str:
        return self.engine.enqueue_step(kind, input_asset_ids, params, provider_key)

    async def run_step(self, step_id: str) -> None:
        await self.engine.run_step(step_id)

    async def generate_directly(self, params: dict[str, Any], provider_key: str) -> Asset:
        return await self.engine.generate_directly(params, provider_key)

    async def submit_masked_edit(
        self,
        asset_id: str,
        raw_mask: MaskSource,
        instruction: str,
        provider_key: str = MASKED_EDIT_PROVIDER,
        padding: Optional[int] = None,
        feather_radius: Optional[float] = None,
        allow_submit_with_warnings: bool = False,
    ) -> PipelineStep:
        """Normalize a painted mask and run an EDIT step with it.

        Raises:
            MissingInputAssetError: If the asset does not exist.
            MaskRejectedError: If the mask fails quality checks and
                warnings are not allowed.
        """
        if asset_id not in self.state.assets:
            raise MissingInputAssetError(f"Asset {asset_id} not found")

        normalized = await asyncio.to_thread(normalize_mask, raw_mask, padding, feather_radius)
        check_submission(normalized.report, allow_submit_with_warnings)

        params = {
            "instruction": instruction,
            "mask": normalized.to_data_url(),
            "mask_coverage": round(normalized.report.coverage, 4),
        }
        step_id = self.engine.enqueue_step(StepKind.EDIT, [asset_id], params, provider_key)
        step = self.state.steps[step_id]
        await self.engine.run_step(step_id)
        return step

    # Persistence

    async def persist(self) -> bool:
        return await self.persistence.persist()

    async def hydrate(self, optimize: bool = True) -> bool:
        return await self.persistence.hydrate(optimize=optimize)

    # Per-provider parameter memory

    async def set_params(self, provider_key: str, params: dict[str, Any]) -> None:
        self.state.params_by_key[provider_key] = dict(params)
        await self.persistence.persist()

    def get_params(self, provider_key: str) -> dict[str, Any]:
        return dict(self.state.params_by_key.get(provider_key, {}))

    def default_generate_provider(self) -> str:
        return settings.providers.default_generate_provider
