"""Mask normalization and the submit policy."""

import numpy as np
import pytest
from PIL import Image

from canvaspipe.errors import MaskError, MaskRejectedError
from canvaspipe.services.content import encode_data_url
from canvaspipe.services.imaging import to_png_bytes
from canvaspipe.services.mask_processor import check_submission, normalize_mask


def painted_mask(size=(100, 100), box=(40, 40, 60, 60), mode="RGBA", color=(255, 0, 0, 255)):
    img = Image.new(mode, size, (0, 0, 0, 0) if mode == "RGBA" else 0)
    img.paste(color if mode == "RGBA" else 255, box)
    return img


def coverage_of(img):
    return float((np.asarray(img) >= 128).mean())


def test_output_is_white_on_black_grayscale():
    normalized = normalize_mask(painted_mask(), padding=0, feather_radius=0)

    values = np.asarray(normalized.image)
    assert normalized.image.mode == "L"
    assert values[50, 50] == 255
    assert values[5, 5] == 0
    assert normalized.report.area == 400
    assert normalized.report.coverage == pytest.approx(0.04)
    assert normalized.report.aspect_ratio == 1.0
    assert normalized.report.is_valid


def test_transparent_paint_is_not_an_edit():
    img = painted_mask(color=(255, 255, 255, 0))
    normalized = normalize_mask(img, padding=0, feather_radius=0)
    assert normalized.report.area == 0
    assert not normalized.report.is_valid
    assert "Mask area is very small" in normalized.report.warnings


def test_padding_grows_the_region():
    plain = normalize_mask(painted_mask(), padding=0, feather_radius=0)
    padded = normalize_mask(painted_mask(), padding=5, feather_radius=0)

    assert padded.report.area > plain.report.area
    values = np.asarray(padded.image)
    assert values[50, 36] == 255  # within 5px of the painted box
    assert values[50, 30] == 0


def test_feathering_grows_a_hard_edged_region():
    plain = normalize_mask(painted_mask(), padding=0, feather_radius=0)
    feathered = normalize_mask(painted_mask(), padding=0, feather_radius=6)
    values = np.asarray(feathered.image)

    assert set(np.unique(values)) <= {0, 255}
    assert values[50, 50] == 255
    assert values[50, 38] == 255  # blurred edge picked back up
    assert values[50, 30] == 0
    assert feathered.report.area > plain.report.area


def test_normalized_output_is_a_fixed_point():
    once = normalize_mask(painted_mask(), padding=12, feather_radius=3)
    twice = normalize_mask(once.image, padding=0, feather_radius=0)

    assert twice.report.coverage == once.report.coverage
    assert np.array_equal(np.asarray(twice.image), np.asarray(once.image))


def test_idempotent_under_zero_padding_and_feather():
    once = normalize_mask(painted_mask(), padding=0, feather_radius=0)
    twice = normalize_mask(once.image, padding=0, feather_radius=0)

    assert twice.report.coverage == once.report.coverage
    assert np.array_equal(np.asarray(twice.image), np.asarray(once.image))


def test_accepts_png_bytes_and_data_url():
    png = to_png_bytes(painted_mask())
    from_bytes = normalize_mask(png, padding=0, feather_radius=0)
    from_url = normalize_mask(encode_data_url(png), padding=0, feather_radius=0)

    assert from_bytes.report.area == from_url.report.area == 400
    assert from_url.to_data_url().startswith("data:image/png;base64,")


def test_large_mask_warns_and_is_invalid():
    img = painted_mask(box=(0, 0, 95, 95))
    report = normalize_mask(img, padding=0, feather_radius=0).report

    assert "Mask covers most of the image" in report.warnings
    assert not report.is_valid


def test_border_touching_mask_warns():
    img = painted_mask(box=(0, 40, 20, 60))
    report = normalize_mask(img, padding=0, feather_radius=0).report

    assert "Mask touches the image border" in report.warnings
    assert report.is_valid


def test_tiny_mask_gets_suggestion():
    img = painted_mask(size=(200, 200), box=(100, 100, 105, 105))
    report = normalize_mask(img, padding=0, feather_radius=0).report

    assert report.area == 25
    assert "Mask area is very small" in report.warnings
    assert any("larger area" in s for s in report.suggestions)


def test_invert_requires_development_mode():
    with pytest.raises(MaskError):
        normalize_mask(painted_mask(), padding=0, feather_radius=0, invert=True, debug=False)

    inverted = normalize_mask(painted_mask(), padding=0, feather_radius=0, invert=True, debug=True)
    values = np.asarray(inverted.image)
    assert values[50, 50] == 0
    assert values[5, 5] == 255
    # the report describes the edit region, not the inverted raster
    assert inverted.report.area == 400


def test_rejects_unreadable_source():
    with pytest.raises(MaskError):
        normalize_mask("https://example.com/mask.png")
    with pytest.raises(MaskError):
        normalize_mask(painted_mask(), padding=-1)


def test_check_submission_policy():
    empty = Image.new("RGBA", (100, 100), (0, 0, 0, 0))
    report = normalize_mask(empty, padding=0, feather_radius=0).report
    assert not report.is_valid

    with pytest.raises(MaskRejectedError) as excinfo:
        check_submission(report, allow_submit_with_warnings=False)
    assert "Mask area is very small" in str(excinfo.value)

    check_submission(report, allow_submit_with_warnings=True)


def test_default_padding_and_feather_apply():
    normalized = normalize_mask(painted_mask())
    plain = normalize_mask(painted_mask(), padding=0, feather_radius=0)
    assert normalized.report.coverage > plain.report.coverage
    assert coverage_of(normalized.image) == pytest.approx(normalized.report.coverage)
