"""Local provider adapters rendered with PIL.

These adapters need no network access. Their output is registered in the
BlobRegistry, so results carry transient ``blob:`` URIs until migrated.
"""

import asyncio
import io
import logging
import math
import uuid
import wave
from datetime import datetime, timezone
from typing import Optional

import numpy as np
from PIL import Image, ImageDraw, ImageEnhance, ImageFilter, ImageFont, ImageSequence

from canvaspipe.schemas.media import Asset
from canvaspipe.services.blob_registry import BlobRegistry
from canvaspipe.services.content import ContentResolver
from canvaspipe.services.imaging import hex_to_rgb, load_image, to_png_bytes
from canvaspipe.services.providers.base import (
    AnimateAdapter,
    AnimateParams,
    ImageEditAdapter,
    ImageEditParams,
    SoundAdapter,
    SoundParams,
    TextOverlayAdapter,
    TextOverlayParams,
)

logger = logging.getLogger(__name__)

_TEXT_ANCHORS = {"left": "lm", "center": "mm", "right": "rm"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _LocalImageAdapter:
    """Shared plumbing: read the input asset, publish the output as a blob."""

    def __init__(self, resolver: ContentResolver, blobs: BlobRegistry):
        self.resolver = resolver
        self.blobs = blobs

    async def _load(self, asset: Asset) -> Image.Image:
        content = await self.resolver.fetch(asset.src)
        return load_image(content.data)

    def _publish(self, data: bytes, mime_type: str) -> str:
        return self.blobs.create_url(data, mime_type)


def _apply_instruction(img: Image.Image, instruction: str) -> Image.Image:
    text = instruction.lower()
    rgba = img.convert("RGBA")

    if "upscale" in text:
        return rgba.resize((rgba.width * 2, rgba.height * 2), Image.Resampling.LANCZOS)

    if "background" in text:
        # Treat colors close to the top-left pixel as background
        arr = np.array(rgba)
        ref = arr[0, 0, :3].astype(np.int16)
        dist = np.abs(arr[:, :, :3].astype(np.int16) - ref).sum(axis=2)
        arr[dist < 48, 3] = 0
        return Image.fromarray(arr, "RGBA")

    if "darker" in text or "shadow" in text:
        return ImageEnhance.Brightness(rgba).enhance(0.7)
    if "brighter" in text or "light" in text:
        return ImageEnhance.Brightness(rgba).enhance(1.2)
    if "blur" in text:
        return rgba.filter(ImageFilter.GaussianBlur(2))

    tint = Image.new("RGBA", rgba.size, (139, 92, 246, 51))
    return Image.alpha_composite(rgba, tint)


class MockEditor(_LocalImageAdapter, ImageEditAdapter):
    """Instruction-keyword image editor (darken, brighten, blur, upscale, cut-out)."""

    key = "editor.mock"

    async def edit(self, asset: Asset, params: ImageEditParams) -> Asset:
        img = await self._load(asset)
        edited = await asyncio.to_thread(_apply_instruction, img, params.instruction)
        data = to_png_bytes(edited)

        return Asset(
            id=str(uuid.uuid4()),
            type="image",
            name=f"Edited: {asset.name}",
            src=self._publish(data, "image/png"),
            meta={
                **asset.meta,
                "width": edited.width,
                "height": edited.height,
                "edit_instruction": params.instruction,
                "provider": self.key,
                "mime_type": "image/png",
                "size": len(data),
            },
            created_at=_now(),
            derived_from=asset.id,
        )


def _load_font(font: Optional[str], size: int) -> ImageFont.ImageFont:
    if font:
        try:
            return ImageFont.truetype(font, size)
        except OSError:
            logger.warning("Font %s not available, using default", font)
    return ImageFont.load_default(size=size)


def _draw_text(img: Image.Image, params: TextOverlayParams) -> Image.Image:
    out = img.convert("RGBA")
    draw = ImageDraw.Draw(out)
    font = _load_font(params.font, params.size)
    if params.position is not None:
        xy = params.position
    else:
        xy = (out.width // 2, out.height // 2)
        if params.align == "left":
            xy = (params.size, out.height // 2)
        elif params.align == "right":
            xy = (out.width - params.size, out.height // 2)
    draw.text(
        xy,
        params.text,
        font=font,
        fill=hex_to_rgb(params.color) + (255,),
        anchor=_TEXT_ANCHORS[params.align],
        stroke_width=max(1, params.size // 16),
        stroke_fill=(0, 0, 0, 200),
    )
    return out


class CanvasTextOverlay(_LocalImageAdapter, TextOverlayAdapter):
    key = "canvas.text"

    async def add_text(self, asset: Asset, params: TextOverlayParams) -> Asset:
        img = await self._load(asset)
        rendered = await asyncio.to_thread(_draw_text, img, params)
        data = to_png_bytes(rendered)

        return Asset(
            id=str(uuid.uuid4()),
            type="image",
            name=f"Text: {asset.name}",
            src=self._publish(data, "image/png"),
            meta={
                **asset.meta,
                "overlay_text": params.text,
                "provider": self.key,
                "mime_type": "image/png",
                "size": len(data),
            },
            created_at=_now(),
            derived_from=asset.id,
        )


def _render_sprite(img: Image.Image, frames: int, fps: int) -> bytes:
    """Render a looping "breathing" GIF: brightness oscillates across frames."""
    base = img.convert("RGB")
    sequence = []
    for i in range(frames):
        phase = math.sin(2 * math.pi * i / frames)
        sequence.append(ImageEnhance.Brightness(base).enhance(1.0 + 0.15 * phase))

    buf = io.BytesIO()
    sequence[0].save(
        buf,
        "GIF",
        save_all=True,
        append_images=sequence[1:],
        duration=int(1000 / fps),
        loop=0,
    )
    return buf.getvalue()


class SpriteAnimator(_LocalImageAdapter, AnimateAdapter):
    key = "sprite.mock"

    async def animate(self, asset: Asset, params: AnimateParams) -> Asset:
        if params.frames < 1 or params.fps < 1:
            raise ValueError("frames and fps must be positive")
        content = await self.resolver.fetch(asset.src)
        first = next(iter(ImageSequence.Iterator(load_image(content.data))))
        data = await asyncio.to_thread(_render_sprite, first.copy(), params.frames, params.fps)

        return Asset(
            id=str(uuid.uuid4()),
            type="animation",
            name=f"Animated: {asset.name}",
            src=self._publish(data, "image/gif"),
            meta={
                **asset.meta,
                "frames": params.frames,
                "fps": params.fps,
                "duration": params.frames / params.fps * 1000,
                "provider": self.key,
                "mime_type": "image/gif",
                "size": len(data),
            },
            created_at=_now(),
            derived_from=asset.id,
        )


def _synthesize_tone(duration_ms: int, sample_rate: int = 22050, text: Optional[str] = None) -> bytes:
    """Render a short mono WAV tone; the pitch is picked from the text length."""
    n = max(1, int(sample_rate * duration_ms / 1000))
    t = np.arange(n) / sample_rate
    base_hz = 220 + 10 * (len(text or "") % 24)
    envelope = np.sin(np.pi * np.linspace(0, 1, n))
    signal = 0.3 * np.sin(2 * np.pi * base_hz * t) * envelope
    pcm = (signal * 32767).astype("<i2").tobytes()

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()


class LocalTTS(SoundAdapter):
    """Offline placeholder voice: produces a tone track sized to the request."""

    key = "tts.local"

    def __init__(self, blobs: BlobRegistry):
        self.blobs = blobs

    async def add_sound(self, target: Asset, params: SoundParams) -> Asset:
        if params.duration_ms <= 0:
            raise ValueError("duration_ms must be positive")
        data = await asyncio.to_thread(_synthesize_tone, params.duration_ms, text=params.tts_text)

        return Asset(
            id=str(uuid.uuid4()),
            type="audio",
            name=f"Audio: {target.name}",
            src=self.blobs.create_url(data, "audio/wav"),
            meta={
                "audio_text": params.tts_text,
                "sfx_kind": params.sfx_kind,
                "duration": params.duration_ms,
                "provider": self.key,
                "mime_type": "audio/wav",
                "size": len(data),
            },
            created_at=_now(),
            derived_from=target.id,
        )
