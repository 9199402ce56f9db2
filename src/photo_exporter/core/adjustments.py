from __future__ import annotations

from dataclasses import dataclass, field
import math
from types import MappingProxyType
from typing import Any, Mapping, Sequence

HSL_BANDS = ("reds", "oranges", "yellows", "greens", "aquas", "blues", "purples", "magentas")
GRADING_RANGES = ("shadows", "midtones", "highlights")
GLOBAL_FIELDS = ("temperature", "tint", "vibrance", "saturation")

DEFAULT_BLENDING = 50.0

# Editor-side adjustments: a nested mapping in which any key may be missing.
Adjustments = Mapping[str, Any]


@dataclass(frozen=True)
class GradingRange:
    hue: float = 0.0  # [0, 360)
    saturation: float = 0.0  # [0, 100]
    luminance: float = 0.0  # [-100, 100]


@dataclass(frozen=True)
class ColorGrading:
    shadows: GradingRange = field(default_factory=GradingRange)
    midtones: GradingRange = field(default_factory=GradingRange)
    highlights: GradingRange = field(default_factory=GradingRange)
    blending: float = DEFAULT_BLENDING
    balance: float = 0.0


@dataclass(frozen=True)
class HslBand:
    hue: float = 0.0
    saturation: float = 0.0
    luminance: float = 0.0


def _default_hsl() -> dict[str, HslBand]:
    return {band: HslBand() for band in HSL_BANDS}


@dataclass(frozen=True)
class ColorAdjustments:
    """Complete color adjustments: every field present.

    Values are not range-checked; the engine clamps at render time.
    """
    temperature: float = 0.0
    tint: float = 0.0
    vibrance: float = 0.0
    saturation: float = 0.0
    color_grading: ColorGrading = field(default_factory=ColorGrading)
    hsl: Mapping[str, HslBand] = field(default_factory=_default_hsl)

    def __post_init__(self) -> None:
        # Absent bands are neutral; the read-only view keeps instances hashable.
        bands = {band: self.hsl.get(band, HslBand()) for band in HSL_BANDS}
        object.__setattr__(self, "hsl", MappingProxyType(bands))

    def __hash__(self) -> int:
        return hash((
            self.temperature,
            self.tint,
            self.vibrance,
            self.saturation,
            self.color_grading,
            tuple(self.hsl.items()),
        ))

    def to_dict(self) -> dict[str, Any]:
        grading = self.color_grading
        return {
            "temperature": self.temperature,
            "tint": self.tint,
            "vibrance": self.vibrance,
            "saturation": self.saturation,
            "colorGrading": {
                **{name: _range_dict(getattr(grading, name)) for name in GRADING_RANGES},
                "blending": grading.blending,
                "balance": grading.balance,
            },
            "hsl": {
                band: {"hue": v.hue, "saturation": v.saturation, "luminance": v.luminance}
                for band, v in self.hsl.items()
            },
        }


def merge_field(adjustments: Adjustments, field_path: str | Sequence[str], value: Any) -> dict[str, Any]:
    """Return a copy of ``adjustments`` with exactly one leaf replaced.

    ``field_path`` is either a dotted string ("colorGrading.shadows.hue") or a
    sequence of keys. Intermediate records that are missing (or not mappings)
    are created. The input is never mutated; untouched siblings are shared.
    """
    keys = field_path.split(".") if isinstance(field_path, str) else list(field_path)
    if not keys:
        return dict(adjustments)
    return _merge(adjustments, keys, value)


def _merge(node: Any, keys: list[str], value: Any) -> dict[str, Any]:
    out = dict(node) if isinstance(node, Mapping) else {}
    head, rest = keys[0], keys[1:]
    out[head] = _merge(out.get(head), rest, value) if rest else value
    return out


def resolve(adjustments: Adjustments | ColorAdjustments | None) -> ColorAdjustments:
    """Fill every omitted color field with its default. Never raises."""
    if isinstance(adjustments, ColorAdjustments):
        return adjustments
    src = adjustments if isinstance(adjustments, Mapping) else {}

    grading_src = _mapping(src.get("colorGrading"))
    grading = ColorGrading(
        shadows=_resolve_range(grading_src.get("shadows")),
        midtones=_resolve_range(grading_src.get("midtones")),
        highlights=_resolve_range(grading_src.get("highlights")),
        blending=_number(grading_src.get("blending"), DEFAULT_BLENDING),
        balance=_number(grading_src.get("balance"), 0.0),
    )

    hsl_src = _mapping(src.get("hsl"))
    hsl = {}
    for band in HSL_BANDS:
        b = _mapping(hsl_src.get(band))
        hsl[band] = HslBand(
            hue=_number(b.get("hue"), 0.0),
            saturation=_number(b.get("saturation"), 0.0),
            luminance=_number(b.get("luminance"), 0.0),
        )

    return ColorAdjustments(
        temperature=_number(src.get("temperature"), 0.0),
        tint=_number(src.get("tint"), 0.0),
        vibrance=_number(src.get("vibrance"), 0.0),
        saturation=_number(src.get("saturation"), 0.0),
        color_grading=grading,
        hsl=hsl,
    )


def complete_for_engine(adjustments: Adjustments | None) -> dict[str, Any]:
    """Editor adjustments with every color field filled in.

    Keys this module does not own (exposure, crop, ...) pass through as-is.
    """
    out = dict(adjustments or {})
    out.update(resolve(adjustments).to_dict())
    return out


def apply_white_balance_sample(adjustments: Adjustments, temperature: float, tint: float) -> dict[str, Any]:
    """Merge a sampled white-balance cast, negated so that it is removed."""
    merged = merge_field(adjustments, "temperature", -temperature)
    return merge_field(merged, "tint", -tint)


def _resolve_range(value: Any) -> GradingRange:
    m = _mapping(value)
    return GradingRange(
        hue=_number(m.get("hue"), 0.0),
        saturation=_number(m.get("saturation"), 0.0),
        luminance=_number(m.get("luminance"), 0.0),
    )


def _range_dict(r: GradingRange) -> dict[str, float]:
    return {"hue": r.hue, "saturation": r.saturation, "luminance": r.luminance}


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or value is None:
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if math.isfinite(out) else default
