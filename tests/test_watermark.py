from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from photo_exporter.core.watermark import (
    PLACEHOLDER_KEYS,
    HorizontalAlignment,
    Rgba,
    VerticalAlignment,
    WatermarkPosition,
    WatermarkSpec,
    WatermarkType,
    anchor_position,
    check_placeholder_syntax,
    default_spec,
    metadata_from_exif,
    normalize_for_submission,
    substitute_placeholders,
)
from photo_exporter.util.errors import ValidationError


def test_default_spec_values() -> None:
    spec = default_spec()
    assert spec.enabled is False
    assert spec.watermark_type == WatermarkType.TEXT
    assert spec.position == WatermarkPosition(HorizontalAlignment.RIGHT, VerticalAlignment.BOTTOM, 50, 50)
    assert spec.scale == 1.0
    assert spec.opacity == 0.8
    text = spec.text_settings
    assert text is not None
    assert text.font_family == "Arial"
    assert text.font_size == 24
    assert text.color == Rgba(255, 255, 255, 255)
    assert text.shadow is True
    assert text.text.startswith("©")
    for key in PLACEHOLDER_KEYS:
        assert "{" + key + "}" in text.text


def test_substitute_placeholders_known_missing_and_unknown() -> None:
    text = "© {photographer} | {camera_make} | {future_tag}"
    out = substitute_placeholders(text, {"photographer": "Ana Ruiz"})
    assert out == "© Ana Ruiz |  | {future_tag}"


def test_check_placeholder_syntax() -> None:
    check_placeholder_syntax("{photographer} {anything}")
    for bad in ("{a{b}}", "oops}", "{never closed"):
        with pytest.raises(ValidationError):
            check_placeholder_syntax(bad)


def test_normalize_disabled_is_omitted_even_if_invalid() -> None:
    spec = replace(default_spec(), enabled=False, watermark_type=WatermarkType.IMAGE, image_path=None, scale=-1)
    assert normalize_for_submission(spec) is None


def test_normalize_image_without_path_fails() -> None:
    spec = replace(default_spec(), enabled=True, watermark_type=WatermarkType.IMAGE, image_path=None)
    with pytest.raises(ValidationError):
        normalize_for_submission(spec)


def test_normalize_image_with_readable_file(tmp_path: Path) -> None:
    logo = tmp_path / "logo.png"
    logo.write_bytes(b"\x89PNG")
    spec = replace(default_spec(), enabled=True, watermark_type=WatermarkType.IMAGE, image_path=logo)
    out = normalize_for_submission(spec)
    assert out is not None
    assert out.image_path == logo


def test_normalize_image_rejects_unknown_suffix(tmp_path: Path) -> None:
    doc = tmp_path / "logo.bmp"
    doc.write_bytes(b"BM")
    spec = replace(default_spec(), enabled=True, watermark_type=WatermarkType.IMAGE, image_path=doc)
    with pytest.raises(ValidationError):
        normalize_for_submission(spec)


def test_normalize_fills_missing_text_settings() -> None:
    spec = replace(default_spec(), enabled=True, text_settings=None)
    out = normalize_for_submission(spec)
    assert out is not None
    assert out.text_settings is not None
    assert out.text_settings.font_size == 24


@pytest.mark.parametrize(
    "changes",
    [
        {"scale": 0},
        {"scale": 3.5},
        {"opacity": 1.5},
        {"position": WatermarkPosition(margin_x=-1)},
    ],
)
def test_normalize_rejects_bad_values(changes: dict) -> None:
    with pytest.raises(ValidationError):
        normalize_for_submission(replace(default_spec(), enabled=True, **changes))


def test_rgba_channel_range() -> None:
    assert Rgba.from_packed([1, 2, 3, 4]).to_packed() == [1, 2, 3, 4]
    with pytest.raises(ValidationError):
        Rgba(256, 0, 0)
    with pytest.raises(ValidationError):
        Rgba.from_packed([0, 0, 0])


def test_anchor_position() -> None:
    canvas = (1000, 800)
    mark = (200, 100)
    assert anchor_position(canvas, mark, WatermarkPosition()) == (750, 650)
    center = WatermarkPosition(HorizontalAlignment.CENTER, VerticalAlignment.CENTER)
    assert anchor_position(canvas, mark, center) == (400, 350)
    top_left = WatermarkPosition(HorizontalAlignment.LEFT, VerticalAlignment.TOP, 10, 20)
    assert anchor_position(canvas, mark, top_left) == (10, 20)
    assert anchor_position((100, 100), (300, 300), WatermarkPosition()) == (0, 0)


def test_metadata_from_exif_formatting() -> None:
    exif = {
        "Make": "Canon",
        "Model": "EOS R5",
        "FNumber": 2.8,
        "ExposureTime": 0.004,
        "PhotographicSensitivity": 400,
        "FocalLength": 35.0,
    }
    meta = metadata_from_exif(exif, "IMG_0001.CR3")
    assert meta["camera_make"] == "Canon"
    assert meta["aperture"] == "2.8"
    assert meta["shutter_speed"] == "1/250"
    assert meta["iso"] == "400"
    assert meta["focal_length"] == "35"
    assert meta["filename"] == "IMG_0001.CR3"
    assert "lens_model" not in meta

    assert metadata_from_exif({"ExposureTime": 2.0}, "x")["shutter_speed"] == "2.0"


def test_from_dict_partial_and_payload() -> None:
    spec = WatermarkSpec.from_dict({"enabled": True, "position": {"horizontal": "Left"}})
    assert spec.enabled is True
    assert spec.position.horizontal == HorizontalAlignment.LEFT
    assert spec.position.vertical == VerticalAlignment.BOTTOM
    assert spec.text_settings == default_spec().text_settings

    payload = spec.to_payload()
    assert payload["watermarkType"] == "Text"
    assert payload["position"]["marginX"] == 50
    assert payload["textSettings"]["shadowColor"] == [0, 0, 0, 128]
    assert payload["imagePath"] is None
    assert WatermarkSpec.from_dict(payload) == spec


def test_from_dict_rejects_bad_enum() -> None:
    with pytest.raises(ValidationError):
        WatermarkSpec.from_dict({"watermarkType": "Hologram"})


def test_from_dict_ignores_sections_that_are_not_mappings() -> None:
    spec = WatermarkSpec.from_dict({"enabled": True, "position": "top-left", "textSettings": ["x"]})
    assert spec.enabled is True
    assert spec.position == default_spec().position
    assert spec.text_settings == default_spec().text_settings
    assert WatermarkSpec.from_dict({"textSettings": None}).text_settings is None
    assert WatermarkSpec.from_dict([("enabled", True)]) == default_spec()
