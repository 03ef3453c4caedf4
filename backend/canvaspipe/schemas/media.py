"""Pydantic models for the asset / step / canvas graph.

These records are held in memory by the store services and serialized as
a single ``AppSnapshot`` document by the persistence layer.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

MediaType = Literal["image", "animation", "audio"]
StepStatus = Literal["queued", "running", "done", "failed"]


class StepKind(str, Enum):
    """Operation a pipeline step performs."""

    GENERATE = "GENERATE"
    EDIT = "EDIT"
    ADD_TEXT = "ADD_TEXT"
    ANIMATE = "ANIMATE"
    ADD_SOUND = "ADD_SOUND"
    UPSCALE = "UPSCALE"
    REMOVE_BG = "REMOVE_BG"


class Asset(BaseModel):
    """Generated or uploaded media item.

    Content fields are immutable once created; only ``category``,
    ``subcategory`` and ``tags`` are patched after creation.
    """

    id: str
    type: MediaType = "image"
    name: str
    src: str = Field(description="Content URI: blob:, data:, file:// or http(s)://")
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    derived_from: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class PipelineStep(BaseModel):
    """Single tracked unit of work.

    ``kind`` is kept as a plain string so that an unknown kind can be
    recorded at enqueue time and failed by the engine at run time.
    """

    id: str
    kind: str
    input_asset_ids: list[str] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)
    provider: str
    status: StepStatus = "queued"
    output_asset_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Canvas(BaseModel):
    """Named workspace slot bound to at most one asset (shared reference)."""

    id: str
    type: str = "image"
    name: str
    asset: Optional[Asset] = None
    created_at: datetime


class GalleryImage(BaseModel):
    """Detached snapshot of a promoted asset with its generation metadata."""

    id: str
    asset_id: Optional[str] = None
    name: str
    src: str
    type: MediaType = "image"
    prompt: Optional[str] = None
    model: Optional[str] = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    category: Optional[str] = None
    favorite: bool = False
    created_at: datetime


class CategoryInfo(BaseModel):
    id: str
    name: str
    subcategories: list[str]


DEFAULT_CATEGORIES: list[CategoryInfo] = [
    CategoryInfo(
        id="generated",
        name="Generated",
        subcategories=["AI Generated", "Portraits", "Landscapes", "Characters", "Objects", "Abstract"],
    ),
    CategoryInfo(
        id="uploaded",
        name="Uploaded",
        subcategories=["Photos", "Graphics", "Assets", "References"],
    ),
    CategoryInfo(
        id="edited",
        name="Edited",
        subcategories=["Enhanced", "Upscaled", "Background Removed", "Retouched"],
    ),
    CategoryInfo(
        id="animated",
        name="Animated",
        subcategories=["Sprites", "Gifs", "Videos"],
    ),
]


class AppSnapshot(BaseModel):
    """The whole persisted application state, written under one key."""

    version: int = 1
    assets: dict[str, Asset] = Field(default_factory=dict)
    steps: dict[str, PipelineStep] = Field(default_factory=dict)
    params_by_key: dict[str, dict[str, Any]] = Field(default_factory=dict)
    gallery_images: list[GalleryImage] = Field(default_factory=list)
    canvases: list[Canvas] = Field(default_factory=list)
    active_canvas_id: Optional[str] = None
