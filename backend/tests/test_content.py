"""Content URI resolution, blob registry and durable media storage."""

import httpx
import pytest

from conftest import make_asset, png_bytes
from canvaspipe.errors import ContentUnavailableError
from canvaspipe.services.blob_registry import is_blob_url
from canvaspipe.services.content import (
    ContentResolver,
    decode_data_url,
    encode_data_url,
    is_expired_url,
)


@pytest.mark.parametrize("url,expired", [
    ("blob:canvaspipe/123", True),
    ("data:image/png;base64,AAAA", True),
    ("https://replicate.delivery/pbxt/abc/out.png", True),
    ("https://pbxt.replicate.delivery/out.png", True),
    ("https://example.com/cat.png", False),
    ("file:///tmp/media/assets/a1.png", False),
])
def test_is_expired_url(url, expired):
    assert is_expired_url(url, ["replicate.delivery"]) is expired


def test_data_url_round_trip():
    data = png_bytes()
    decoded = decode_data_url(encode_data_url(data, "image/png"))
    assert decoded.data == data
    assert decoded.mime_type == "image/png"


def test_plain_data_url():
    decoded = decode_data_url("data:,hello%20world")
    assert decoded.data == b"hello world"
    assert decoded.mime_type == "text/plain"


def test_malformed_data_url():
    with pytest.raises(ContentUnavailableError):
        decode_data_url("data:image/png;base64")


def test_blob_registry_lifecycle(blobs):
    url = blobs.create_url(b"abc", "text/plain")
    assert is_blob_url(url)
    assert url.startswith("blob:canvaspipe/")
    assert blobs.resolve(url).data == b"abc"
    assert len(blobs) == 1

    assert blobs.revoke(url) is True
    assert blobs.revoke(url) is False
    assert blobs.get(url) is None
    with pytest.raises(ContentUnavailableError):
        blobs.resolve(url)


@pytest.mark.asyncio
async def test_resolver_fetches_blob_and_file(resolver, blobs, media_store):
    url = blobs.create_url(b"blob-bytes", "image/png")
    content = await resolver.fetch(url)
    assert (content.data, content.mime_type) == (b"blob-bytes", "image/png")

    path = media_store.save_asset("a1", b"file-bytes", "image/png")
    content = await resolver.fetch(media_store.uri_for(path))
    assert content.data == b"file-bytes"
    assert content.mime_type == "image/png"

    with pytest.raises(ContentUnavailableError):
        await resolver.fetch(media_store.uri_for(path.with_name("missing.png")))
    with pytest.raises(ContentUnavailableError):
        await resolver.fetch(media_store.base_dir.as_uri())
    with pytest.raises(ContentUnavailableError):
        await resolver.fetch("ftp://example.com/x")


@pytest.mark.asyncio
async def test_resolver_fetches_http(blobs):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/gone.png":
            return httpx.Response(404)
        return httpx.Response(200, content=b"remote", headers={"content-type": "image/webp; q=1"})

    resolver = ContentResolver(blobs, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    try:
        content = await resolver.fetch("https://cdn.example.com/img.webp")
        assert (content.data, content.mime_type) == (b"remote", "image/webp")
        with pytest.raises(ContentUnavailableError):
            await resolver.fetch("https://cdn.example.com/gone.png")
    finally:
        await resolver.close()


@pytest.mark.asyncio
async def test_replicate_delivery_assets_are_migrated(editor, blobs):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=png_bytes(), headers={"content-type": "image/png"})

    editor.persistence.resolver = ContentResolver(
        blobs, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )
    url = "https://replicate.delivery/pbxt/out.png"
    await editor.assets.add_asset(make_asset("r1", src=url))

    assert await editor.persistence.migrate_expired_assets() == 1
    asset = editor.state.assets["r1"]
    assert asset.src.startswith("file://")
    assert asset.meta["original_url"] == url


def test_media_store_rejects_traversal(media_store):
    with pytest.raises(ValueError):
        media_store.save_asset("../../escape", b"x", "image/png")
    assert media_store.save_export("out.png", b"x").parent.name == "exports"
