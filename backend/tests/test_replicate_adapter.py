"""Replicate client and adapters against an httpx.MockTransport."""

import json

import httpx
import pytest

from conftest import make_asset, png_bytes
from canvaspipe.errors import ProviderRequestError
from canvaspipe.services.providers.base import ImageEditParams, ImageGenParams
from canvaspipe.services.providers.registry import ProviderRegistry
from canvaspipe.services.providers.replicate_adapter import (
    FLUX_SCHNELL_MODEL,
    ReplicateBackgroundRemover,
    ReplicateFluxInpaint,
    ReplicateImageGen,
    ReplicateUpscaler,
)
from canvaspipe.services.replicate_client import ReplicateClient, first_output_url

OUTPUT_URL = "https://replicate.delivery/pbxt/out.png"


class FakeReplicate:
    """Minimal predictions API: creates, then reports ``statuses`` on each poll."""

    def __init__(self, statuses=("processing", "succeeded"), create_status=201, poll_errors=0):
        self.statuses = list(statuses)
        self.create_status = create_status
        self.poll_errors = poll_errors
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            if self.create_status >= 400:
                return httpx.Response(self.create_status, text="invalid input")
            return httpx.Response(self.create_status, json={"id": "p1", "status": "starting"})

        if self.poll_errors:
            self.poll_errors -= 1
            raise httpx.ConnectError("connection reset", request=request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        body = {"id": "p1", "status": status}
        if status == "succeeded":
            body["output"] = [OUTPUT_URL]
        if status == "failed":
            body["error"] = "NSFW content detected"
        return httpx.Response(200, json=body)

    def client(self, **kwargs) -> ReplicateClient:
        return ReplicateClient(
            api_token="r8_test",
            base_url="https://api.replicate.test/v1",
            poll_interval=0,
            poll_max_attempts=kwargs.pop("poll_max_attempts", 5),
            transport=httpx.MockTransport(self.handler),
        )

    @property
    def posts(self):
        return [r for r in self.requests if r.method == "POST"]

    def body(self, index=0) -> dict:
        return json.loads(self.posts[index].content)


@pytest.mark.asyncio
async def test_run_creates_and_polls_until_succeeded():
    fake = FakeReplicate()
    client = fake.client()

    prediction = await client.run({"prompt": "x"}, model=FLUX_SCHNELL_MODEL)

    assert prediction["status"] == "succeeded"
    assert first_output_url(prediction) == OUTPUT_URL
    assert fake.posts[0].url.path == f"/v1/models/{FLUX_SCHNELL_MODEL}/predictions"
    assert fake.posts[0].headers["Authorization"] == "Bearer r8_test"
    assert [r.url.path for r in fake.requests[1:]] == ["/v1/predictions/p1"] * 2
    await client.close()


@pytest.mark.asyncio
async def test_version_predictions_post_to_predictions():
    fake = FakeReplicate(statuses=("succeeded",))
    await fake.client().run({"image": "x"}, version="abc123")

    assert fake.posts[0].url.path == "/v1/predictions"
    assert fake.body() == {"version": "abc123", "input": {"image": "x"}}


@pytest.mark.asyncio
async def test_create_failure_is_not_retried():
    fake = FakeReplicate(create_status=422)

    with pytest.raises(ProviderRequestError, match="HTTP 422"):
        await fake.client().run({"prompt": "x"}, model=FLUX_SCHNELL_MODEL)
    assert len(fake.requests) == 1


@pytest.mark.asyncio
async def test_poll_transport_errors_are_retried():
    fake = FakeReplicate(statuses=("succeeded",), poll_errors=2)

    prediction = await fake.client().run({"prompt": "x"}, model=FLUX_SCHNELL_MODEL)

    assert prediction["status"] == "succeeded"
    assert len(fake.posts) == 1


@pytest.mark.asyncio
async def test_poll_timeout():
    fake = FakeReplicate(statuses=("processing",))

    with pytest.raises(ProviderRequestError, match="timed out"):
        await fake.client(poll_max_attempts=3).run({"prompt": "x"}, model=FLUX_SCHNELL_MODEL)


@pytest.mark.asyncio
async def test_failed_prediction_raises_with_provider_error():
    fake = FakeReplicate(statuses=("failed",))

    with pytest.raises(ProviderRequestError, match="NSFW"):
        await fake.client().run({"prompt": "x"}, model=FLUX_SCHNELL_MODEL)


@pytest.mark.asyncio
async def test_missing_token_fails_before_any_request():
    client = ReplicateClient(api_token=None)
    with pytest.raises(ProviderRequestError, match="token not configured"):
        await client.run({"prompt": "x"}, model=FLUX_SCHNELL_MODEL)


def test_first_output_url_accepts_string_or_list():
    assert first_output_url({"output": "https://a/b.png"}) == "https://a/b.png"
    assert first_output_url({"output": ["https://a/1.png", "https://a/2.png"]}) == "https://a/1.png"
    with pytest.raises(ProviderRequestError):
        first_output_url({"id": "p", "output": []})


@pytest.mark.asyncio
async def test_image_gen_adapter_builds_asset():
    fake = FakeReplicate()
    adapter = ReplicateImageGen(fake.client())

    asset = await adapter.generate(ImageGenParams(prompt="a red fox", seed=3))

    assert asset.src == OUTPUT_URL
    assert asset.name == "a red fox"
    assert asset.meta["provider"] == "replicate.flux-schnell"
    assert fake.body()["input"] == {
        "prompt": "a red fox",
        "aspect_ratio": "1:1",
        "output_format": "png",
        "seed": 3,
    }


@pytest.mark.asyncio
async def test_inpaint_inlines_local_content_and_prefixes_name(blobs, resolver):
    fake = FakeReplicate()
    adapter = ReplicateFluxInpaint(fake.client(), resolver)
    source = make_asset("src", name="cat", src=blobs.create_url(png_bytes(), "image/png"))

    asset = await adapter.edit(source, ImageEditParams(instruction="add a hat", mask="data:image/png;base64,AAAA"))

    sent = fake.body()["input"]
    assert sent["image"].startswith("data:image/png;base64,")
    assert sent["mask"] == "data:image/png;base64,AAAA"
    assert sent["prompt"] == "add a hat"
    assert asset.name == "FLUX Inpaint: cat"
    assert asset.derived_from == "src"
    assert asset.meta["masked"] is True


@pytest.mark.asyncio
async def test_inpaint_requires_instruction():
    adapter = ReplicateFluxInpaint(FakeReplicate().client())
    with pytest.raises(ValueError):
        await adapter.edit(make_asset(), ImageEditParams())


@pytest.mark.asyncio
async def test_upscale_and_rembg_pass_remote_urls_through():
    fake = FakeReplicate(statuses=("succeeded",))
    client = fake.client()
    source = make_asset("src", name="dog", meta={"width": 100, "height": 50})

    upscaled = await ReplicateUpscaler(client).edit(source, ImageEditParams(instruction="x"))
    cutout = await ReplicateBackgroundRemover(client).edit(source, ImageEditParams(instruction="x"))

    assert fake.body(0)["input"]["image"] == source.src
    assert fake.body(0)["input"]["scale"] == 2
    assert (upscaled.meta["width"], upscaled.meta["height"]) == (200, 100)
    assert cutout.meta["has_transparency"] is True
    assert cutout.name == "dog (Background Removed)"


@pytest.mark.asyncio
async def test_engine_generates_through_replicate(editor):
    fake = FakeReplicate()
    registry = ProviderRegistry()
    registry.register("generate", ReplicateImageGen(fake.client()))
    editor.engine.providers = registry

    asset = await editor.generate_directly({"prompt": "a cat"}, "replicate.flux-schnell")

    assert asset.src == OUTPUT_URL
    assert asset.category == "generated"
