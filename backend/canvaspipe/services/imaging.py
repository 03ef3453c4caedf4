"""PIL helpers shared by local adapters, demo seeding and mask processing."""

import io
import random
from typing import Optional

from PIL import Image, ImageDraw


def load_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def to_png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


def hex_to_rgb(color: str) -> tuple[int, int, int]:
    color = color.lstrip("#")
    return int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16)


def render_gradient_placeholder(
    color: str,
    size: int = 512,
    circles: int = 20,
    seed: Optional[int] = None,
) -> Image.Image:
    """Diagonal gradient from ``color`` to half intensity with soft circles."""
    r, g, b = hex_to_rgb(color)
    base = Image.new("RGB", (size, size))
    px = base.load()
    span = 2 * (size - 1) or 1
    for y in range(size):
        for x in range(size):
            t = (x + y) / span
            # fade towards 50% alpha over white
            f = 1.0 - 0.5 * t
            px[x, y] = (
                int(r * f + 255 * (1 - f) * 0.5),
                int(g * f + 255 * (1 - f) * 0.5),
                int(b * f + 255 * (1 - f) * 0.5),
            )

    overlay = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    rng = random.Random(seed)
    for _ in range(circles):
        cx, cy = rng.uniform(0, size), rng.uniform(0, size)
        radius = rng.uniform(10, 60)
        draw.ellipse((cx - radius, cy - radius, cx + radius, cy + radius), fill=(255, 255, 255, 26))

    return Image.alpha_composite(base.convert("RGBA"), overlay).convert("RGB")
