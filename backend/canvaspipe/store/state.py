"""Shared in-memory application state.

One ``AppState`` instance is shared by the asset store, canvas registry,
step engine and persistence layer. It is plain mutable data: the event
loop is single-threaded, so mutations between awaits are atomic.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from canvaspipe.schemas.media import AppSnapshot, Asset, Canvas, GalleryImage, PipelineStep

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AppState:
    assets: dict[str, Asset] = field(default_factory=dict)
    steps: dict[str, PipelineStep] = field(default_factory=dict)
    selected_asset_ids: list[str] = field(default_factory=list)
    canvases: list[Canvas] = field(default_factory=list)
    active_canvas_id: Optional[str] = None
    gallery_images: list[GalleryImage] = field(default_factory=list)
    params_by_key: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_snapshot(self) -> AppSnapshot:
        return AppSnapshot(
            assets=self.assets,
            steps=self.steps,
            params_by_key=self.params_by_key,
            gallery_images=self.gallery_images,
            canvases=self.canvases,
            active_canvas_id=self.active_canvas_id,
        )

    def load_snapshot(self, snapshot: AppSnapshot) -> None:
        """Replace the persisted portion of the state. Selection is not persisted."""
        self.assets = dict(snapshot.assets)
        self.steps = dict(snapshot.steps)
        self.params_by_key = dict(snapshot.params_by_key)
        self.gallery_images = list(snapshot.gallery_images)
        self.canvases = list(snapshot.canvases)
        self.active_canvas_id = snapshot.active_canvas_id
        self.selected_asset_ids = []

    def get_canvas(self, canvas_id: str) -> Optional[Canvas]:
        return next((c for c in self.canvases if c.id == canvas_id), None)

    def ensure_active_canvas(self) -> None:
        """Point the active canvas at the newest remaining one when it was removed."""
        if self.active_canvas_id and self.get_canvas(self.active_canvas_id):
            return
        newest = max(self.canvases, key=lambda c: c.created_at, default=None)
        self.active_canvas_id = newest.id if newest else None
