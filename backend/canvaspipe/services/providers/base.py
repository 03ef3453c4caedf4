"""Abstract base classes for provider adapters.

Each operation family (generate, edit, text overlay, animate, sound) has
its own adapter contract with a single async method returning a newly
produced ``Asset``. Parameters arrive as validated Pydantic models; the
models allow extra keys so provider-specific options pass through.
"""

from abc import ABC, abstractmethod
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from canvaspipe.schemas.media import Asset


class _Params(BaseModel):
    model_config = ConfigDict(extra="allow")


class ImageGenParams(_Params):
    prompt: str
    negative_prompt: Optional[str] = None
    seed: Optional[int] = None
    aspect: Optional[str] = None
    refs: list[str] = Field(default_factory=list, description="Reference asset ids")


class ImageEditParams(_Params):
    instruction: str = ""
    mask: Optional[str] = Field(default=None, description="Normalized mask as a PNG data: URI")
    mask_asset_id: Optional[str] = None


class TextOverlayParams(_Params):
    text: str
    font: Optional[str] = None
    size: int = 32
    position: Optional[tuple[int, int]] = None
    align: Literal["left", "center", "right"] = "center"
    color: str = "#FFFFFF"


class AnimateParams(_Params):
    frames: int = 4
    fps: int = 2
    method: Literal["sprite", "lottie"] = "sprite"


class SoundParams(_Params):
    tts_text: Optional[str] = None
    sfx_kind: Optional[str] = None
    duration_ms: int = 3000


class ImageGenAdapter(ABC):
    """Produces a new asset from a prompt."""

    key: str
    params_model = ImageGenParams

    @abstractmethod
    async def generate(self, params: ImageGenParams) -> Asset:
        ...


class ImageEditAdapter(ABC):
    """Produces a new asset derived from an input asset.

    Also serves UPSCALE and REMOVE_BG steps, which arrive with a
    synthesized instruction when the caller did not supply one.
    """

    key: str
    params_model = ImageEditParams

    @abstractmethod
    async def edit(self, asset: Asset, params: ImageEditParams) -> Asset:
        ...


class TextOverlayAdapter(ABC):
    key: str
    params_model = TextOverlayParams

    @abstractmethod
    async def add_text(self, asset: Asset, params: TextOverlayParams) -> Asset:
        ...


class AnimateAdapter(ABC):
    key: str
    params_model = AnimateParams

    @abstractmethod
    async def animate(self, asset: Asset, params: AnimateParams) -> Asset:
        ...


class SoundAdapter(ABC):
    key: str
    params_model = SoundParams

    @abstractmethod
    async def add_sound(self, target: Asset, params: SoundParams) -> Asset:
        ...
