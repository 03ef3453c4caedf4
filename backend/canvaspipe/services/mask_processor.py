"""Mask normalization for edit-family steps.

Turns a user-painted mask into the canonical form providers expect
(white = region to edit, black = region to preserve), applies padding
(disk dilation) and feathering (gaussian edge blur), and reports on mask
quality. The output is always hard black/white: feathered values are
thresholded again so a normalized mask normalizes to itself.

The quality gate is advisory: ``normalize_mask`` never refuses a mask for
being too small or too large. Callers decide through
``check_submission(report, allow_submit_with_warnings=...)``.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np
from PIL import Image, ImageFilter

from canvaspipe.config import MaskConfig, settings
from canvaspipe.errors import MaskError, MaskRejectedError
from canvaspipe.services.content import decode_data_url, encode_data_url
from canvaspipe.services.imaging import load_image, to_png_bytes

logger = logging.getLogger(__name__)

MaskSource = Union[Image.Image, bytes, str]

# Output pixels at or above this value count as "edit"
EDIT_LEVEL = 128


@dataclass
class MaskQualityReport:
    is_valid: bool
    area: int
    coverage: float
    aspect_ratio: float
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass
class NormalizedMask:
    image: Image.Image
    report: MaskQualityReport

    def to_png_bytes(self) -> bytes:
        return to_png_bytes(self.image)

    def to_data_url(self) -> str:
        return encode_data_url(self.to_png_bytes(), "image/png")


def load_mask(source: MaskSource) -> Image.Image:
    """Accept a PIL image, encoded image bytes, or a ``data:`` URI."""
    if isinstance(source, Image.Image):
        img = source
    elif isinstance(source, (bytes, bytearray)):
        img = load_image(bytes(source))
    elif isinstance(source, str) and source.startswith("data:"):
        img = load_image(decode_data_url(source).data)
    else:
        raise MaskError("Unsupported mask source; expected image, bytes or data: URI")

    if img.width == 0 or img.height == 0:
        raise MaskError("Mask image is empty")
    return img


def edit_region(img: Image.Image, threshold: int) -> np.ndarray:
    """Boolean edit region of a raw mask.

    The mask is composited onto black: intensity is the brightest channel
    scaled by alpha, so any opaque brush color counts and transparent
    areas never do.
    """
    rgba = np.asarray(img.convert("RGBA"), dtype=np.float32)
    intensity = rgba[..., :3].max(axis=2) * (rgba[..., 3] / 255.0)
    return intensity > threshold


def dilate(mask: np.ndarray, radius: int) -> np.ndarray:
    """Grow the edit region by a disk of ``radius`` pixels."""
    if radius <= 0:
        return mask.copy()
    h, w = mask.shape
    padded = np.pad(mask, radius, mode="constant", constant_values=False)
    out = np.zeros_like(mask)
    r2 = radius * radius
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            if dx * dx + dy * dy > r2:
                continue
            out |= padded[radius + dy:radius + dy + h, radius + dx:radius + dx + w]
    return out


def feather(values: np.ndarray, radius: float) -> np.ndarray:
    """Gaussian blur of the edge (sigma = radius / 3).

    Returns the soft values; ``normalize_mask`` re-hardens them, so the net
    effect is a slightly grown region with rounded corners.
    """
    if radius <= 0:
        return values
    blurred = Image.fromarray(values, "L").filter(ImageFilter.GaussianBlur(radius / 3))
    return np.asarray(blurred, dtype=np.uint8)


def analyze_mask(values: np.ndarray, config: Optional[MaskConfig] = None) -> MaskQualityReport:
    """Build the quality report for a canonical (white = edit) mask."""
    config = config or settings.mask
    height, width = values.shape
    edit = values >= EDIT_LEVEL
    area = int(edit.sum())
    coverage = area / float(width * height)

    warnings: list[str] = []
    suggestions: list[str] = []

    if coverage < config.small_coverage_warning:
        warnings.append("Mask area is very small")
        suggestions.append("Try painting a larger area for better results")
    elif coverage > config.large_coverage_warning:
        warnings.append("Mask covers most of the image")
        suggestions.append("Consider painting a smaller, more specific area")

    if area < config.min_area_pixels:
        suggestions.append("Paint a larger area for more stable inpainting")

    touches_border = bool(edit[0, :].any() or edit[-1, :].any() or edit[:, 0].any() or edit[:, -1].any())
    if touches_border and coverage <= config.large_coverage_warning:
        warnings.append("Mask touches the image border")
        suggestions.append("Check the mask was painted where intended; edits at the edge can leave seams")

    return MaskQualityReport(
        is_valid=config.min_valid_coverage < coverage < config.max_valid_coverage,
        area=area,
        coverage=coverage,
        aspect_ratio=width / height,
        warnings=warnings,
        suggestions=suggestions,
    )


def normalize_mask(
    source: MaskSource,
    padding: Optional[int] = None,
    feather_radius: Optional[float] = None,
    *,
    invert: bool = False,
    debug: Optional[bool] = None,
    config: Optional[MaskConfig] = None,
) -> NormalizedMask:
    """Normalize a painted mask to white = edit and report on its quality.

    Args:
        source: Raw mask (PIL image, PNG bytes, or data: URI).
        padding: Dilation radius in pixels (default from settings).
        feather_radius: Edge blur radius (default from settings).
        invert: Flip white/black semantics. Only honored in debug mode,
            for troubleshooting providers that expect the opposite convention.
        debug: Development-mode gate; defaults to settings.is_development.
        config: Thresholds (default settings.mask).

    Returns:
        NormalizedMask with a black/white "L" image and its quality report.

    Raises:
        MaskError: If the source cannot be read, or inversion is requested
            outside development mode.
    """
    config = config or settings.mask
    padding = config.padding if padding is None else padding
    feather_radius = config.feather_radius if feather_radius is None else feather_radius
    debug = settings.is_development if debug is None else debug

    if padding < 0 or feather_radius < 0:
        raise MaskError("padding and feather_radius must be non-negative")
    if invert and not debug:
        raise MaskError("Mask inversion is only available in development mode")

    img = load_mask(source)
    region = dilate(edit_region(img, config.edit_threshold), int(padding))
    softened = feather(np.where(region, 255, 0).astype(np.uint8), feather_radius)
    values = np.where(softened > config.edit_threshold, 255, 0).astype(np.uint8)

    report = analyze_mask(values, config)
    if invert:
        logger.warning("Debug mask inversion enabled: white now marks the preserved region")
        values = 255 - values

    logger.debug(
        "Normalized mask %dx%d pad=%s feather=%s coverage=%.4f",
        img.width, img.height, padding, feather_radius, report.coverage,
    )
    return NormalizedMask(image=Image.fromarray(values, "L"), report=report)


def check_submission(report: MaskQualityReport, allow_submit_with_warnings: bool) -> None:
    """Apply the submit policy to a quality report.

    Raises:
        MaskRejectedError: If the mask is invalid and warnings are not allowed.
    """
    if report.is_valid or allow_submit_with_warnings:
        if not report.is_valid:
            logger.info("Submitting mask despite warnings: %s", report.warnings)
        return
    raise MaskRejectedError(report.warnings)
