"""Canvas registry: named workspaces each bound to at most one asset."""

import logging
import re
import uuid
from datetime import timedelta
from typing import Optional, Union

from canvaspipe.config import settings
from canvaspipe.schemas.media import Asset, Canvas
from canvaspipe.schemas.transfer import AssetTransferPayload
from canvaspipe.store.persistence import PersistenceLayer
from canvaspipe.store.state import AppState, Clock, utc_now

logger = logging.getLogger(__name__)

_INPAINT_PREFIX = re.compile(r"^(?:\s*FLUX Inpaint:\s*)+")


def normalize_canvas_title(name: str) -> str:
    """Strip every leading "FLUX Inpaint: " prefix.

    Repeated inpainting produces names like "FLUX Inpaint: FLUX Inpaint: cat";
    the canvas keeps the clean base title "cat".

    >>> normalize_canvas_title("FLUX Inpaint: FLUX Inpaint: cat")
    'cat'
    """
    name = (name or "").strip()
    return _INPAINT_PREFIX.sub("", name).strip() or name


class CanvasRegistry:
    def __init__(
        self,
        state: AppState,
        persistence: PersistenceLayer,
        clock: Clock = utc_now,
        max_canvases: Optional[int] = None,
    ):
        self.state = state
        self.persistence = persistence
        self.clock = clock
        self.max_canvases = max_canvases if max_canvases is not None else settings.retention.max_canvases

    @property
    def active_canvas(self) -> Optional[Canvas]:
        if self.state.active_canvas_id is None:
            return None
        return self.state.get_canvas(self.state.active_canvas_id)

    def get_canvas(self, canvas_id: str) -> Optional[Canvas]:
        return self.state.get_canvas(canvas_id)

    def list_canvases(self) -> list[Canvas]:
        return list(self.state.canvases)

    async def create_canvas(self, type: str = "image", asset: Optional[Asset] = None) -> Canvas:
        """Create and activate a canvas, evicting the oldest beyond the cap."""
        if asset is not None:
            name = normalize_canvas_title(asset.name)
        else:
            name = f"Canvas {len(self.state.canvases) + 1}"

        canvas = Canvas(
            id=str(uuid.uuid4()),
            type=type,
            name=name,
            asset=asset,
            created_at=self.clock(),
        )

        keep = max(self.max_canvases - 1, 0)
        existing = sorted(self.state.canvases, key=lambda c: c.created_at)
        evicted = existing[:len(existing) - keep] if len(existing) > keep else []
        if evicted:
            logger.info("Canvas limit reached, evicting %d oldest canvas(es)", len(evicted))
        self.state.canvases = existing[len(evicted):] + [canvas]
        self.state.active_canvas_id = canvas.id

        await self.persistence.persist()
        return canvas

    async def update_canvas_asset(self, canvas_id: str, asset: Optional[Asset]) -> Optional[Canvas]:
        canvas = self.state.get_canvas(canvas_id)
        if canvas is None:
            logger.warning("Cannot bind asset to unknown canvas %s", canvas_id)
            return None
        canvas.asset = asset
        if asset is not None:
            canvas.name = normalize_canvas_title(asset.name)
        await self.persistence.persist()
        return canvas

    async def rename_canvas(self, canvas_id: str, name: str) -> Optional[Canvas]:
        canvas = self.state.get_canvas(canvas_id)
        if canvas is None:
            return None
        canvas.name = normalize_canvas_title(name)
        await self.persistence.persist()
        return canvas

    def set_active_canvas(self, canvas_id: Optional[str]) -> Optional[Canvas]:
        if canvas_id is not None and self.state.get_canvas(canvas_id) is None:
            logger.warning("Cannot activate unknown canvas %s", canvas_id)
            return self.active_canvas
        self.state.active_canvas_id = canvas_id
        return self.active_canvas

    async def delete_canvas(self, canvas_id: str) -> bool:
        canvas = self.state.get_canvas(canvas_id)
        if canvas is None:
            return False
        self.state.canvases.remove(canvas)
        self.state.ensure_active_canvas()
        await self.persistence.persist()
        return True

    async def delete_all_canvases(self) -> int:
        count = len(self.state.canvases)
        self.state.canvases = []
        self.state.active_canvas_id = None
        await self.persistence.persist()
        return count

    async def cleanup_empty_canvases(self, max_age: Optional[Union[int, float, timedelta]] = None) -> int:
        """Delete asset-less canvases older than ``max_age`` (seconds or timedelta)."""
        if max_age is None:
            max_age = settings.retention.empty_canvas_max_age_seconds
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)

        cutoff = self.clock() - max_age
        stale = [c for c in self.state.canvases if c.asset is None and c.created_at < cutoff]
        if not stale:
            return 0

        stale_ids = {c.id for c in stale}
        self.state.canvases = [c for c in self.state.canvases if c.id not in stale_ids]
        self.state.ensure_active_canvas()
        logger.info("Removed %d empty canvas(es)", len(stale))
        await self.persistence.persist()
        return len(stale)

    async def handle_drop(
        self,
        payload: Union[AssetTransferPayload, str, bytes],
        canvas_id: Optional[str] = None,
    ) -> Canvas:
        """Bind a dropped asset to ``canvas_id``, or to a new canvas.

        An id already in the store resolves to the stored asset; otherwise
        a detached asset is built from the payload.
        """
        if not isinstance(payload, AssetTransferPayload):
            payload = AssetTransferPayload.from_json(payload)

        asset = self.state.assets.get(payload.id) or payload.to_asset(self.clock())

        if canvas_id is not None:
            canvas = await self.update_canvas_asset(canvas_id, asset)
            if canvas is not None:
                return canvas
        return await self.create_canvas(type=asset.type, asset=asset)
