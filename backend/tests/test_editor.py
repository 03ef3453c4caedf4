"""Masked edit submission through the editor facade."""

import pytest
from PIL import Image

from conftest import make_asset
from canvaspipe.errors import MaskRejectedError, MissingInputAssetError
from canvaspipe.services.content import decode_data_url
from canvaspipe.services.imaging import load_image


def mask_image(box):
    img = Image.new("RGBA", (64, 64), (0, 0, 0, 0))
    if box:
        img.paste((255, 255, 255, 255), box)
    return img


@pytest.mark.asyncio
async def test_submit_masked_edit_embeds_normalized_mask(editor, stub_editor):
    await editor.assets.add_asset(make_asset("a1", name="cat"))

    step = await editor.submit_masked_edit(
        "a1", mask_image((20, 20, 40, 40)), "add a hat", provider_key="stub.edit", padding=2, feather_radius=0
    )

    assert step.kind == "EDIT"
    assert step.status == "done"
    (asset, params), = stub_editor.calls
    assert asset.id == "a1"
    assert params.instruction == "add a hat"
    mask = load_image(decode_data_url(params.mask).data)
    assert mask.mode == "L"
    assert mask.getpixel((30, 30)) == 255
    assert mask.getpixel((18, 30)) == 255  # padded
    assert mask.getpixel((5, 5)) == 0


@pytest.mark.asyncio
async def test_invalid_mask_rejected_without_flag(editor, stub_editor):
    await editor.assets.add_asset(make_asset("a1"))

    with pytest.raises(MaskRejectedError):
        await editor.submit_masked_edit("a1", mask_image(None), "x", provider_key="stub.edit")

    assert stub_editor.calls == []
    assert editor.state.steps == {}


@pytest.mark.asyncio
async def test_invalid_mask_allowed_with_flag(editor, stub_editor):
    await editor.assets.add_asset(make_asset("a1"))

    step = await editor.submit_masked_edit(
        "a1", mask_image((0, 0, 64, 64)), "x", provider_key="stub.edit", allow_submit_with_warnings=True
    )

    assert step.status == "done"
    assert len(stub_editor.calls) == 1


@pytest.mark.asyncio
async def test_masked_edit_requires_existing_asset(editor):
    with pytest.raises(MissingInputAssetError):
        await editor.submit_masked_edit("missing", mask_image((0, 0, 10, 10)), "x")


@pytest.mark.asyncio
async def test_create_in_memory_editor_hydrates(providers, media_store):
    from canvaspipe.editor import MediaEditor

    editor = await MediaEditor.create(in_memory=True, providers=providers, media_store=media_store)
    try:
        assert len(editor.state.assets) == 2
    finally:
        await editor.close()


@pytest.mark.asyncio
async def test_injected_empty_collaborators_are_kept(kv_store, providers, media_store):
    from canvaspipe.editor import MediaEditor
    from canvaspipe.services.blob_registry import BlobRegistry
    from canvaspipe.services.content import ContentResolver

    blobs = BlobRegistry()
    resolver = ContentResolver(blobs)
    editor = MediaEditor(kv_store, providers=providers, blobs=blobs, resolver=resolver, media_store=media_store)

    assert editor.blobs is blobs
    url = editor.blobs.create_url(b"upload", "image/png")
    assert (await editor.resolver.fetch(url)).data == b"upload"
