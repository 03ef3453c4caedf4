"""API route handlers and Pydantic request/response schemas."""

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from canvaspipe.editor import MediaEditor
from canvaspipe.errors import MaskError, MissingInputAssetError
from canvaspipe.schemas.media import Asset, Canvas, PipelineStep
from canvaspipe.schemas.transfer import AssetTransferPayload
from canvaspipe.services.mask_processor import normalize_mask

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_editor(request: Request) -> MediaEditor:
    return request.app.state.editor


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class EnqueueStepRequest(BaseModel):
    kind: str
    input_asset_ids: list[str] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)
    provider: str
    run: bool = Field(default=True, description="Start the step in the background")


class StepAccepted(BaseModel):
    step_id: str
    status: str
    status_url: str


class CategoryUpdate(BaseModel):
    category: Optional[str] = None
    subcategory: Optional[str] = None


class CreateCanvasRequest(BaseModel):
    type: str = "image"
    asset_id: Optional[str] = None


class DropRequest(BaseModel):
    payload: AssetTransferPayload
    canvas_id: Optional[str] = None


class MaskRequest(BaseModel):
    mask: str = Field(description="Raw painted mask as a data: URI")
    padding: Optional[int] = None
    feather_radius: Optional[float] = None
    invert: bool = False


class MaskedEditRequest(BaseModel):
    mask: str = Field(description="Raw painted mask as a data: URI")
    instruction: str
    provider: Optional[str] = None
    padding: Optional[int] = None
    feather_radius: Optional[float] = None
    allow_submit_with_warnings: bool = False


class MaskResponse(BaseModel):
    mask: str
    is_valid: bool
    area: int
    coverage: float
    aspect_ratio: float
    warnings: list[str]
    suggestions: list[str]


class StorageReportResponse(BaseModel):
    canvases_removed: int
    steps_removed: int
    assets_migrated: int


class StorageStatsResponse(BaseModel):
    assets: int
    steps: int
    canvases: int
    gallery_images: int
    transient_assets: int
    snapshot_bytes: int


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

@router.post("/steps", status_code=202, response_model=StepAccepted)
async def enqueue_step(
    request: EnqueueStepRequest,
    background_tasks: BackgroundTasks,
    editor: MediaEditor = Depends(get_editor),
):
    """Record a step and, unless ``run`` is false, execute it in background."""
    step_id = editor.enqueue_step(request.kind, request.input_asset_ids, request.params, request.provider)
    if request.run:
        background_tasks.add_task(editor.run_step, step_id)
    logger.info(f"Accepted {request.kind} step {step_id} on {request.provider}")
    return StepAccepted(step_id=step_id, status="queued", status_url=f"/api/steps/{step_id}")


@router.post("/steps/{step_id}/run", status_code=202, response_model=StepAccepted)
async def run_step(
    step_id: str,
    background_tasks: BackgroundTasks,
    editor: MediaEditor = Depends(get_editor),
):
    """Run a queued step. Returns 409 if it already started."""
    step = editor.engine.get_step(step_id)
    if step is None:
        raise HTTPException(status_code=404, detail="Step not found")
    if step.status != "queued":
        raise HTTPException(
            status_code=409,
            detail=f"Step cannot be run from status '{step.status}'",
        )
    background_tasks.add_task(editor.run_step, step_id)
    return StepAccepted(step_id=step_id, status=step.status, status_url=f"/api/steps/{step_id}")


@router.get("/steps/{step_id}", response_model=PipelineStep)
async def get_step(step_id: str, editor: MediaEditor = Depends(get_editor)):
    step = editor.engine.get_step(step_id)
    if step is None:
        raise HTTPException(status_code=404, detail="Step not found")
    return step


@router.get("/steps", response_model=list[PipelineStep])
async def list_steps(status: Optional[str] = None, editor: MediaEditor = Depends(get_editor)):
    return editor.engine.list_steps(status)


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------

@router.get("/assets", response_model=list[Asset])
async def list_assets(category: Optional[str] = None, editor: MediaEditor = Depends(get_editor)):
    return editor.assets.list_assets(category)


@router.delete("/assets/{asset_id}", status_code=204)
async def delete_asset(asset_id: str, editor: MediaEditor = Depends(get_editor)):
    if not await editor.assets.delete_asset(asset_id):
        raise HTTPException(status_code=404, detail="Asset not found")


@router.patch("/assets/{asset_id}/category", response_model=Asset)
async def update_asset_category(
    asset_id: str,
    request: CategoryUpdate,
    editor: MediaEditor = Depends(get_editor),
):
    asset = await editor.assets.update_asset_category(asset_id, request.category, request.subcategory)
    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    return asset


# ---------------------------------------------------------------------------
# Canvases
# ---------------------------------------------------------------------------

@router.get("/canvases", response_model=list[Canvas])
async def list_canvases(editor: MediaEditor = Depends(get_editor)):
    return editor.canvases.list_canvases()


@router.post("/canvases", status_code=201, response_model=Canvas)
async def create_canvas(request: CreateCanvasRequest, editor: MediaEditor = Depends(get_editor)):
    asset = None
    if request.asset_id:
        asset = editor.assets.get_asset(request.asset_id)
        if asset is None:
            raise HTTPException(status_code=404, detail="Asset not found")
    return await editor.canvases.create_canvas(request.type, asset)


@router.post("/canvases/drop", response_model=Canvas)
async def drop_on_canvas(request: DropRequest, editor: MediaEditor = Depends(get_editor)):
    return await editor.canvases.handle_drop(request.payload, request.canvas_id)


@router.delete("/canvases/{canvas_id}", status_code=204)
async def delete_canvas(canvas_id: str, editor: MediaEditor = Depends(get_editor)):
    if not await editor.canvases.delete_canvas(canvas_id):
        raise HTTPException(status_code=404, detail="Canvas not found")


# ---------------------------------------------------------------------------
# Masks
# ---------------------------------------------------------------------------

@router.post("/masks/normalize", response_model=MaskResponse)
async def normalize_mask_endpoint(request: MaskRequest):
    """Normalize a painted mask off the event loop and return its report."""
    try:
        normalized = await asyncio.to_thread(
            normalize_mask,
            request.mask,
            request.padding,
            request.feather_radius,
            invert=request.invert,
        )
    except MaskError as e:
        raise HTTPException(status_code=422, detail=str(e))

    report = normalized.report
    return MaskResponse(
        mask=normalized.to_data_url(),
        is_valid=report.is_valid,
        area=report.area,
        coverage=report.coverage,
        aspect_ratio=report.aspect_ratio,
        warnings=report.warnings,
        suggestions=report.suggestions,
    )


@router.post("/assets/{asset_id}/masked-edit", response_model=PipelineStep)
async def masked_edit(
    asset_id: str,
    request: MaskedEditRequest,
    editor: MediaEditor = Depends(get_editor),
):
    """Normalize the mask and run an EDIT step with it.

    Returns the finished step. A mask that fails quality checks is
    rejected with 422 unless ``allow_submit_with_warnings`` is set.
    """
    kwargs = {"provider_key": request.provider} if request.provider else {}
    try:
        return await editor.submit_masked_edit(
            asset_id,
            request.mask,
            request.instruction,
            padding=request.padding,
            feather_radius=request.feather_radius,
            allow_submit_with_warnings=request.allow_submit_with_warnings,
            **kwargs,
        )
    except MissingInputAssetError:
        raise HTTPException(status_code=404, detail="Asset not found")
    except MaskError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

@router.post("/storage/optimize", response_model=StorageReportResponse)
async def optimize_storage(editor: MediaEditor = Depends(get_editor)):
    report = await editor.persistence.optimize_storage()
    return StorageReportResponse(**vars(report))


@router.get("/storage/stats", response_model=StorageStatsResponse)
async def storage_stats(editor: MediaEditor = Depends(get_editor)):
    return StorageStatsResponse(**vars(editor.persistence.storage_stats()))
