"""HTTP API through httpx.ASGITransport."""

import httpx
import pytest
import pytest_asyncio
from PIL import Image

from conftest import make_asset
from canvaspipe.api.app import create_app
from canvaspipe.services.content import encode_data_url
from canvaspipe.services.imaging import to_png_bytes


@pytest_asyncio.fixture
async def client(editor):
    app = create_app(editor)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_enqueue_and_run_step(client, editor):
    response = await client.post("/api/steps", json={
        "kind": "GENERATE",
        "params": {"prompt": "a cat"},
        "provider": "stub.gen",
    })
    assert response.status_code == 202
    body = response.json()
    assert body["status_url"] == f"/api/steps/{body['step_id']}"

    step = (await client.get(body["status_url"])).json()
    assert step["status"] == "done"
    assert step["output_asset_id"] == "a1"

    rerun = await client.post(f"/api/steps/{body['step_id']}/run")
    assert rerun.status_code == 409


@pytest.mark.asyncio
async def test_enqueue_without_running(client):
    response = await client.post("/api/steps", json={
        "kind": "GENERATE", "params": {"prompt": "x"}, "provider": "stub.gen", "run": False,
    })
    step_id = response.json()["step_id"]
    assert (await client.get(f"/api/steps/{step_id}")).json()["status"] == "queued"

    assert (await client.post(f"/api/steps/{step_id}/run")).status_code == 202
    assert (await client.get(f"/api/steps/{step_id}")).json()["status"] == "done"
    listed = (await client.get("/api/steps", params={"status": "done"})).json()
    assert [s["id"] for s in listed] == [step_id]


@pytest.mark.asyncio
async def test_unknown_step_is_404(client):
    assert (await client.get("/api/steps/missing")).status_code == 404
    assert (await client.post("/api/steps/missing/run")).status_code == 404


@pytest.mark.asyncio
async def test_asset_endpoints(client, editor):
    await editor.assets.add_asset(make_asset("a1", category="uploaded"))

    assets = (await client.get("/api/assets")).json()
    assert [a["id"] for a in assets] == ["a1"]

    patched = await client.patch("/api/assets/a1/category", json={"category": "edited", "subcategory": "Retouched"})
    assert patched.json()["subcategory"] == "Retouched"

    assert (await client.delete("/api/assets/a1")).status_code == 204
    assert (await client.delete("/api/assets/a1")).status_code == 404


@pytest.mark.asyncio
async def test_canvas_endpoints(client, editor):
    await editor.assets.add_asset(make_asset("a1", name="FLUX Inpaint: fox"))

    created = await client.post("/api/canvases", json={"asset_id": "a1"})
    assert created.status_code == 201
    assert created.json()["name"] == "fox"

    dropped = await client.post("/api/canvases/drop", json={
        "payload": {"id": "ext", "name": "remote", "url": "https://example.com/x.png"},
    })
    assert dropped.json()["asset"]["src"] == "https://example.com/x.png"
    assert len((await client.get("/api/canvases")).json()) == 2

    assert (await client.delete(f"/api/canvases/{created.json()['id']}")).status_code == 204
    assert (await client.post("/api/canvases", json={"asset_id": "nope"})).status_code == 404


@pytest.mark.asyncio
async def test_mask_normalize_endpoint(client):
    img = Image.new("RGBA", (100, 100), (0, 0, 0, 0))
    img.paste((255, 255, 255, 255), (40, 40, 60, 60))

    response = await client.post("/api/masks/normalize", json={
        "mask": encode_data_url(to_png_bytes(img)), "padding": 0, "feather_radius": 0,
    })

    body = response.json()
    assert response.status_code == 200
    assert body["area"] == 400
    assert body["is_valid"] is True
    assert body["mask"].startswith("data:image/png;base64,")

    bad = await client.post("/api/masks/normalize", json={"mask": "not-a-mask"})
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_storage_endpoints(client, editor):
    await editor.assets.add_asset(make_asset("a1"))

    stats = (await client.get("/api/storage/stats")).json()
    assert stats["assets"] == 1

    report = (await client.post("/api/storage/optimize")).json()
    assert report == {"canvases_removed": 0, "steps_removed": 0, "assets_migrated": 0}


@pytest.mark.asyncio
async def test_masked_edit_endpoint(client, editor, stub_editor):
    await editor.assets.add_asset(make_asset("a1"))
    painted = Image.new("RGBA", (64, 64), (0, 0, 0, 0))
    painted.paste((255, 255, 255, 255), (20, 20, 40, 40))
    body = {"mask": encode_data_url(to_png_bytes(painted)), "instruction": "add a hat", "provider": "stub.edit"}

    response = await client.post("/api/assets/a1/masked-edit", json=body)
    assert response.status_code == 200
    assert response.json()["status"] == "done"
    assert stub_editor.calls[0][1].mask.startswith("data:image/png;base64,")

    empty = {**body, "mask": encode_data_url(to_png_bytes(Image.new("RGBA", (64, 64))))}
    assert (await client.post("/api/assets/a1/masked-edit", json=empty)).status_code == 422
    allowed = await client.post("/api/assets/a1/masked-edit", json={**empty, "allow_submit_with_warnings": True})
    assert allowed.status_code == 200
    assert (await client.post("/api/assets/nope/masked-edit", json=body)).status_code == 404
