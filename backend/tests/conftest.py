"""Shared fixtures: in-memory store, deterministic clock, stub adapters, wired editor."""

import io
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

# Ensure backend package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from canvaspipe.db.kv_store import MemoryKeyValueStore
from canvaspipe.editor import MediaEditor
from canvaspipe.schemas.media import Asset
from canvaspipe.services.blob_registry import BlobRegistry
from canvaspipe.services.content import ContentResolver
from canvaspipe.services.media_store import MediaStore
from canvaspipe.services.notifications import RecordingNotifier
from canvaspipe.services.providers.base import (
    ImageEditAdapter,
    ImageEditParams,
    ImageGenAdapter,
    ImageGenParams,
    SoundAdapter,
    SoundParams,
)
from canvaspipe.services.providers.registry import ProviderRegistry

EPOCH = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock. Each call advances by ``step``."""

    def __init__(self, start: datetime = EPOCH, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def png_bytes(color=(139, 92, 246), size=(16, 16)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, "PNG")
    return buf.getvalue()


def make_asset(asset_id: Optional[str] = None, src: str = "https://example.com/a.png", **kwargs) -> Asset:
    fields = dict(
        id=asset_id or str(uuid.uuid4()),
        type="image",
        name="asset",
        src=src,
        created_at=EPOCH,
    )
    fields.update(kwargs)
    return Asset(**fields)


class StubGenerator(ImageGenAdapter):
    """Returns a fixed asset id, or raises ``error`` when set."""

    key = "stub.gen"

    def __init__(self, asset_id: str = "a1", error: Optional[Exception] = None):
        self.asset_id = asset_id
        self.error = error
        self.calls: list[ImageGenParams] = []

    async def generate(self, params: ImageGenParams) -> Asset:
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return make_asset(self.asset_id, name=params.prompt, meta={"prompt": params.prompt})


class StubEditor(ImageEditAdapter):
    key = "stub.edit"

    def __init__(self):
        self.calls: list[tuple[Asset, ImageEditParams]] = []

    async def edit(self, asset: Asset, params: ImageEditParams) -> Asset:
        self.calls.append((asset, params))
        return make_asset(name=f"Edited: {asset.name}", derived_from=asset.id)


class StubSound(SoundAdapter):
    key = "stub.sound"

    async def add_sound(self, target: Asset, params: SoundParams) -> Asset:
        return make_asset(type="audio", name="voice", category="audio", subcategory="Voice")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def blobs():
    return BlobRegistry()


@pytest.fixture
def resolver(blobs):
    return ContentResolver(blobs)


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def media_store(tmp_path):
    return MediaStore(tmp_path / "media")


@pytest.fixture
def generator():
    return StubGenerator()


@pytest.fixture
def stub_editor():
    return StubEditor()


@pytest.fixture
def providers(generator, stub_editor):
    registry = ProviderRegistry()
    registry.register("generate", generator)
    registry.register("edit", stub_editor)
    registry.register("sound", StubSound())
    return registry


@pytest.fixture
def editor(kv_store, providers, blobs, resolver, media_store, notifier, clock):
    return MediaEditor(
        kv_store,
        providers=providers,
        blobs=blobs,
        resolver=resolver,
        media_store=media_store,
        notifier=notifier,
        clock=clock,
    )
