from __future__ import annotations

from datetime import datetime
from pathlib import Path

from photo_exporter.core.filename_template import RenderContext, effective_template, resolve, resolve_batch

TS = datetime(2024, 3, 5, 7, 9, 30)


def test_resolve_all_tokens() -> None:
    ctx = RenderContext(original_filename="DSC_0042", sequence=7, timestamp=TS)
    out = resolve("{original_filename}-{sequence}-{YYYY}{MM}{DD}_{hh}{mm}", ctx)
    assert out == "DSC_0042-7-20240305_0709"


def test_unknown_tokens_pass_through() -> None:
    ctx = RenderContext(original_filename="a", sequence=1, timestamp=TS)
    assert resolve("{client}_{original_filename}_{}", ctx) == "{client}_a_{}"


def test_single_target_is_not_suffixed() -> None:
    assert resolve_batch("img", [Path("/photos/IMG_1.jpg")], TS) == ["img"]
    assert effective_template("img", 1) == "img"


def test_batch_names_are_distinct_with_sequence() -> None:
    targets = [Path(f"/shoot/{i}/same.jpg") for i in range(5)]
    names = resolve_batch("img", targets, TS)
    assert names == ["img_1", "img_2", "img_3", "img_4", "img_5"]
    assert len(set(names)) == len(targets)


def test_batch_template_with_sequence_is_untouched() -> None:
    assert effective_template("{sequence}-{original_filename}", 3) == "{sequence}-{original_filename}"
    names = resolve_batch("{sequence}-{original_filename}", ["a.jpg", "b.tif"], TS)
    assert names == ["1-a", "2-b"]


def test_batch_default_template() -> None:
    names = resolve_batch("{original_filename}_edited", ["x/IMG_1.jpg", "y/IMG_2.jpg"], TS)
    assert names == ["IMG_1_edited_1", "IMG_2_edited_2"]
