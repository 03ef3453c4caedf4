"""Provider registry lookups and the bundled default registry."""

import pytest

from conftest import StubEditor, StubGenerator
from canvaspipe.services.providers.registry import ProviderRegistry, default_registry


def test_lookup_found():
    registry = ProviderRegistry()
    gen = StubGenerator()
    registry.register("generate", gen)

    lookup = registry.lookup("generate", "stub.gen")
    assert lookup.found
    assert lookup.adapter is gen
    assert lookup.reason is None


def test_lookup_missing_key_has_reason():
    lookup = ProviderRegistry().lookup("edit", "missing.key")
    assert not lookup.found
    assert lookup.reason == "Provider missing.key not found"


def test_lookup_unknown_family():
    lookup = ProviderRegistry().lookup("teleport", "x")
    assert not lookup.found
    assert "teleport" in lookup.reason


def test_register_checks_adapter_family():
    registry = ProviderRegistry()
    with pytest.raises(TypeError):
        registry.register("generate", StubEditor())
    with pytest.raises(ValueError):
        registry.register("nope", StubGenerator())


def test_register_with_explicit_key():
    registry = ProviderRegistry()
    registry.register("generate", StubGenerator(), key="alias")
    assert registry.keys("generate") == ["alias"]


def test_default_registry_bundles_all_families(blobs, resolver):
    families = default_registry(resolver, blobs).families()

    assert families["generate"] == ["replicate.flux-schnell"]
    assert set(families["edit"]) == {
        "editor.mock",
        "replicate.flux-inpaint",
        "replicate.rembg",
        "replicate.upscale",
    }
    assert families["text_overlay"] == ["canvas.text"]
    assert families["animate"] == ["sprite.mock"]
    assert families["sound"] == ["tts.local"]
