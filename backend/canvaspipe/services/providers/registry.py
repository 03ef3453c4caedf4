"""Provider registry for step adapters.

Maps (family, provider key) to an adapter instance. Lookups return an
explicit ``ProviderLookup`` result instead of ``None`` so callers get a
reason for a miss.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from canvaspipe.services.providers.base import (
    AnimateAdapter,
    ImageEditAdapter,
    ImageGenAdapter,
    SoundAdapter,
    TextOverlayAdapter,
)

logger = logging.getLogger(__name__)

Adapter = Union[ImageGenAdapter, ImageEditAdapter, TextOverlayAdapter, AnimateAdapter, SoundAdapter]

FAMILIES: dict[str, type] = {
    "generate": ImageGenAdapter,
    "edit": ImageEditAdapter,
    "text_overlay": TextOverlayAdapter,
    "animate": AnimateAdapter,
    "sound": SoundAdapter,
}


@dataclass(frozen=True)
class ProviderLookup:
    """Result of a registry lookup."""

    family: str
    key: str
    adapter: Optional[Any] = None
    reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.adapter is not None


class ProviderRegistry:
    """Family-scoped mapping from provider key to adapter."""

    def __init__(self) -> None:
        self._adapters: dict[str, dict[str, Adapter]] = {family: {} for family in FAMILIES}

    def register(self, family: str, adapter: Adapter, key: Optional[str] = None) -> None:
        if family not in FAMILIES:
            raise ValueError(f"Unknown adapter family: {family}")
        expected = FAMILIES[family]
        if not isinstance(adapter, expected):
            raise TypeError(
                f"Adapter for family '{family}' must implement {expected.__name__}, "
                f"got {type(adapter).__name__}"
            )
        provider_key = key or adapter.key
        self._adapters[family][provider_key] = adapter
        logger.debug("Registered %s adapter %s", family, provider_key)

    def lookup(self, family: str, key: str) -> ProviderLookup:
        if family not in self._adapters:
            return ProviderLookup(family=family, key=key, reason=f"Unknown adapter family: {family}")
        adapter = self._adapters[family].get(key)
        if adapter is None:
            return ProviderLookup(family=family, key=key, reason=f"Provider {key} not found")
        return ProviderLookup(family=family, key=key, adapter=adapter)

    def keys(self, family: str) -> list[str]:
        return sorted(self._adapters.get(family, {}))

    def families(self) -> dict[str, list[str]]:
        return {family: self.keys(family) for family in FAMILIES}


def default_registry(content_resolver=None, blobs=None) -> ProviderRegistry:
    """Build the registry with every bundled adapter.

    Routing:
    - "replicate.*" -> Replicate HTTP adapters (token from settings)
    - "editor.mock", "canvas.text", "sprite.mock", "tts.local" -> local PIL adapters
    """
    from canvaspipe.services.providers.local_adapters import (
        CanvasTextOverlay,
        LocalTTS,
        MockEditor,
        SpriteAnimator,
    )
    from canvaspipe.services.providers.replicate_adapter import (
        ReplicateBackgroundRemover,
        ReplicateFluxInpaint,
        ReplicateImageGen,
        ReplicateUpscaler,
    )
    from canvaspipe.services.replicate_client import get_replicate_client

    registry = ProviderRegistry()
    client = get_replicate_client()
    registry.register("generate", ReplicateImageGen(client))
    registry.register("edit", ReplicateFluxInpaint(client, content_resolver))
    registry.register("edit", ReplicateUpscaler(client, content_resolver))
    registry.register("edit", ReplicateBackgroundRemover(client, content_resolver))

    registry.register("edit", MockEditor(content_resolver, blobs))
    registry.register("text_overlay", CanvasTextOverlay(content_resolver, blobs))
    registry.register("animate", SpriteAnimator(content_resolver, blobs))
    registry.register("sound", LocalTTS(blobs))
    return registry
