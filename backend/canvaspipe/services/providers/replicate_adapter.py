"""Replicate-backed provider adapters.

Each adapter submits one prediction, waits for it, and wraps the output
URL in a new Asset. Output URLs live on replicate.delivery and expire, so
these assets are picked up later by expired-asset migration.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from canvaspipe.schemas.media import Asset
from canvaspipe.services.content import ContentResolver, encode_data_url
from canvaspipe.services.providers.base import (
    ImageEditAdapter,
    ImageEditParams,
    ImageGenAdapter,
    ImageGenParams,
)
from canvaspipe.services.replicate_client import ReplicateClient, first_output_url

logger = logging.getLogger(__name__)

FLUX_SCHNELL_MODEL = "black-forest-labs/flux-schnell"
FLUX_FILL_MODEL = "black-forest-labs/flux-fill-pro"
UPSCALE_VERSION = "9283608cc6b7be6b65a8e44983db012355fde4132009bf99d976b2f0896856a3"
REMBG_VERSION = "fb8af171cfa1616ddcf1242c093f9c46bcada5ad4cf6f2fbe8b81b330ec5c003"


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _image_input(asset: Asset, resolver: Optional[ContentResolver]) -> str:
    """Return a URI Replicate can read: remote URLs as-is, local content inlined."""
    if asset.src.startswith(("http://", "https://", "data:")) or resolver is None:
        return asset.src
    content = await resolver.fetch(asset.src)
    return encode_data_url(content.data, content.mime_type)


class ReplicateImageGen(ImageGenAdapter):
    key = "replicate.flux-schnell"

    def __init__(self, client: ReplicateClient, model: str = FLUX_SCHNELL_MODEL):
        self.client = client
        self.model = model

    async def generate(self, params: ImageGenParams) -> Asset:
        payload: dict[str, Any] = {
            "prompt": params.prompt,
            "aspect_ratio": params.aspect or "1:1",
            "output_format": "png",
        }
        if params.seed is not None:
            payload["seed"] = params.seed

        prediction = await self.client.run(payload, model=self.model)
        url = first_output_url(prediction)
        logger.info("Generated image for prompt %r: %s", params.prompt[:60], url)

        return Asset(
            id=str(uuid.uuid4()),
            type="image",
            name=params.prompt[:60] or "Generated image",
            src=url,
            meta={
                "provider": self.key,
                "model": self.model,
                "prompt": params.prompt,
                "seed": params.seed,
                "aspect": payload["aspect_ratio"],
                "mime_type": "image/png",
            },
            created_at=_now(),
        )


class ReplicateFluxInpaint(ImageEditAdapter):
    """Masked precision editing. Output names are prefixed "FLUX Inpaint: "."""

    key = "replicate.flux-inpaint"

    def __init__(self, client: ReplicateClient, resolver: Optional[ContentResolver] = None):
        self.client = client
        self.resolver = resolver

    async def edit(self, asset: Asset, params: ImageEditParams) -> Asset:
        if not params.instruction:
            raise ValueError("FLUX Inpaint requires an instruction")

        payload: dict[str, Any] = {
            "image": await _image_input(asset, self.resolver),
            "prompt": params.instruction,
            "output_format": "png",
        }
        if params.mask:
            payload["mask"] = params.mask

        prediction = await self.client.run(payload, model=FLUX_FILL_MODEL)
        url = first_output_url(prediction)

        return Asset(
            id=str(uuid.uuid4()),
            type="image",
            name=f"FLUX Inpaint: {asset.name}",
            src=url,
            meta={
                **asset.meta,
                "provider": self.key,
                "edit_instruction": params.instruction,
                "masked": bool(params.mask),
                "mime_type": "image/png",
            },
            created_at=_now(),
            derived_from=asset.id,
        )


class ReplicateUpscaler(ImageEditAdapter):
    key = "replicate.upscale"

    def __init__(self, client: ReplicateClient, resolver: Optional[ContentResolver] = None, scale: int = 2):
        self.client = client
        self.resolver = resolver
        self.scale = scale

    async def edit(self, asset: Asset, params: ImageEditParams) -> Asset:
        scale = int(getattr(params, "scale", None) or self.scale)
        payload = {
            "image": await _image_input(asset, self.resolver),
            "scale": scale,
            "face_enhance": True,
        }
        prediction = await self.client.run(payload, version=UPSCALE_VERSION)
        url = first_output_url(prediction)

        return Asset(
            id=str(uuid.uuid4()),
            type=asset.type,
            name=f"{asset.name} (Upscaled)",
            src=url,
            meta={
                **asset.meta,
                "provider": self.key,
                "original_asset": asset.id,
                "width": (asset.meta.get("width") or 512) * scale,
                "height": (asset.meta.get("height") or 512) * scale,
            },
            created_at=_now(),
            derived_from=asset.id,
        )


class ReplicateBackgroundRemover(ImageEditAdapter):
    key = "replicate.rembg"

    def __init__(self, client: ReplicateClient, resolver: Optional[ContentResolver] = None):
        self.client = client
        self.resolver = resolver

    async def edit(self, asset: Asset, params: ImageEditParams) -> Asset:
        payload = {"image": await _image_input(asset, self.resolver)}
        prediction = await self.client.run(payload, version=REMBG_VERSION)
        url = first_output_url(prediction)

        return Asset(
            id=str(uuid.uuid4()),
            type=asset.type,
            name=f"{asset.name} (Background Removed)",
            src=url,
            meta={
                **asset.meta,
                "provider": self.key,
                "original_asset": asset.id,
                "mime_type": "image/png",
                "has_transparency": True,
            },
            created_at=_now(),
            derived_from=asset.id,
        )
