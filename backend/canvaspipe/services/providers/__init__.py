"""Provider adapter abstraction layer.

Usage:
    from canvaspipe.services.providers import ProviderRegistry, default_registry

    registry = default_registry(content_resolver, blobs)
    lookup = registry.lookup("generate", "replicate.flux-schnell")
    if lookup.found:
        asset = await lookup.adapter.generate(params)
"""

from canvaspipe.services.providers.base import (
    AnimateAdapter,
    AnimateParams,
    ImageEditAdapter,
    ImageEditParams,
    ImageGenAdapter,
    ImageGenParams,
    SoundAdapter,
    SoundParams,
    TextOverlayAdapter,
    TextOverlayParams,
)
from canvaspipe.services.providers.registry import ProviderLookup, ProviderRegistry, default_registry

__all__ = [
    "AnimateAdapter",
    "AnimateParams",
    "ImageEditAdapter",
    "ImageEditParams",
    "ImageGenAdapter",
    "ImageGenParams",
    "ProviderLookup",
    "ProviderRegistry",
    "SoundAdapter",
    "SoundParams",
    "TextOverlayAdapter",
    "TextOverlayParams",
    "default_registry",
]
