from canvaspipe.schemas.media import (
    DEFAULT_CATEGORIES,
    AppSnapshot,
    Asset,
    Canvas,
    CategoryInfo,
    GalleryImage,
    PipelineStep,
    StepKind,
)
from canvaspipe.schemas.transfer import AssetTransferPayload

__all__ = [
    "DEFAULT_CATEGORIES",
    "AppSnapshot",
    "Asset",
    "AssetTransferPayload",
    "Canvas",
    "CategoryInfo",
    "GalleryImage",
    "PipelineStep",
    "StepKind",
]
