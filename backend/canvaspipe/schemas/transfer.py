"""Drag/drop asset transfer payload.

The wire format is a flat JSON object with no versioning:
``{"id", "name", "type", "url", "thumbnail", "duration"}``.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from canvaspipe.schemas.media import Asset, MediaType


class AssetTransferPayload(BaseModel):
    id: str
    name: str
    type: MediaType = "image"
    url: str
    thumbnail: Optional[str] = None
    duration: Optional[float] = None

    @classmethod
    def from_asset(cls, asset: Asset) -> "AssetTransferPayload":
        return cls(
            id=asset.id,
            name=asset.name,
            type=asset.type,
            url=asset.src,
            thumbnail=asset.meta.get("thumbnail"),
            duration=asset.meta.get("duration"),
        )

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_json(cls, data: str | bytes) -> "AssetTransferPayload":
        return cls.model_validate_json(data)

    def to_asset(self, created_at: Optional[datetime] = None) -> Asset:
        """Build a detached Asset for a payload whose id is not in the store."""
        meta = {}
        if self.thumbnail:
            meta["thumbnail"] = self.thumbnail
        if self.duration is not None:
            meta["duration"] = self.duration
        return Asset(
            id=self.id,
            type=self.type,
            name=self.name,
            src=self.url,
            meta=meta,
            created_at=created_at or datetime.now(timezone.utc),
        )
