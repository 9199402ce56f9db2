from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
import re
from typing import Any, Mapping, Sequence

from photo_exporter.util.errors import ValidationError
from photo_exporter.util.paths import is_readable_file

WATERMARK_METADATA_PLACEHOLDERS: tuple[tuple[str, str], ...] = (
    ("{photographer}", "Photographer name"),
    ("{camera_make}", "Camera make"),
    ("{camera_model}", "Camera model"),
    ("{lens_model}", "Lens model"),
    ("{aperture}", "Aperture (f-stop)"),
    ("{shutter_speed}", "Shutter speed"),
    ("{iso}", "ISO sensitivity"),
    ("{focal_length}", "Focal length (mm)"),
    ("{date_time}", "Date and time"),
    ("{filename}", "File name"),
)
PLACEHOLDER_KEYS = frozenset(p.strip("{}") for p, _ in WATERMARK_METADATA_PLACEHOLDERS)

WATERMARK_FONT_FAMILIES = ("Arial", "Helvetica", "Times New Roman", "Georgia", "Verdana", "Tahoma")
WATERMARK_IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".svg", ".gif"})

DEFAULT_WATERMARK_TEXT = (
    "© {photographer} - {camera_make} {camera_model} - {lens_model} - "
    "{focal_length}mm f/{aperture} {shutter_speed}s ISO{iso} - {date_time} - {filename}"
)

MAX_SCALE = 3.0

_TOKEN_RE = re.compile(r"\{([^{}]*)\}")


class WatermarkType(str, Enum):
    TEXT = "Text"
    IMAGE = "Image"


class HorizontalAlignment(str, Enum):
    LEFT = "Left"
    CENTER = "Center"
    RIGHT = "Right"


class VerticalAlignment(str, Enum):
    TOP = "Top"
    CENTER = "Center"
    BOTTOM = "Bottom"


ANCHOR_CHOICES: tuple[tuple[HorizontalAlignment, VerticalAlignment, str], ...] = (
    (HorizontalAlignment.LEFT, VerticalAlignment.TOP, "Top Left"),
    (HorizontalAlignment.CENTER, VerticalAlignment.TOP, "Top Center"),
    (HorizontalAlignment.RIGHT, VerticalAlignment.TOP, "Top Right"),
    (HorizontalAlignment.LEFT, VerticalAlignment.CENTER, "Center Left"),
    (HorizontalAlignment.CENTER, VerticalAlignment.CENTER, "Center"),
    (HorizontalAlignment.RIGHT, VerticalAlignment.CENTER, "Center Right"),
    (HorizontalAlignment.LEFT, VerticalAlignment.BOTTOM, "Bottom Left"),
    (HorizontalAlignment.CENTER, VerticalAlignment.BOTTOM, "Bottom Center"),
    (HorizontalAlignment.RIGHT, VerticalAlignment.BOTTOM, "Bottom Right"),
)


@dataclass(frozen=True)
class Rgba:
    red: int
    green: int
    blue: int
    alpha: int = 255

    def __post_init__(self) -> None:
        for name in ("red", "green", "blue", "alpha"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, int) or not 0 <= v <= 255:
                raise ValidationError(f"RGBA channel {name} must be an integer in 0-255, got {v!r}.")

    @classmethod
    def from_packed(cls, values: Sequence[int]) -> "Rgba":
        if len(values) != 4:
            raise ValidationError(f"RGBA color needs 4 channels, got {len(values)}.")
        return cls(*values)

    def to_packed(self) -> list[int]:
        return [self.red, self.green, self.blue, self.alpha]


@dataclass(frozen=True)
class WatermarkPosition:
    horizontal: HorizontalAlignment = HorizontalAlignment.RIGHT
    vertical: VerticalAlignment = VerticalAlignment.BOTTOM
    margin_x: int = 50
    margin_y: int = 50


@dataclass(frozen=True)
class TextWatermarkSettings:
    text: str = DEFAULT_WATERMARK_TEXT
    font_family: str = "Arial"
    font_size: float = 24.0
    color: Rgba = field(default_factory=lambda: Rgba(255, 255, 255, 255))
    bold: bool = False
    italic: bool = False
    shadow: bool = True
    shadow_color: Rgba = field(default_factory=lambda: Rgba(0, 0, 0, 128))
    shadow_offset_x: int = 1
    shadow_offset_y: int = 1


@dataclass(frozen=True)
class WatermarkSpec:
    """Watermark description as edited in the settings panel.

    ``text_settings`` may be unset while editing; ``normalize_for_submission``
    fills it in. ``opacity`` and ``scale`` apply on top of per-color alpha.
    """
    enabled: bool = False
    watermark_type: WatermarkType = WatermarkType.TEXT
    position: WatermarkPosition = field(default_factory=WatermarkPosition)
    scale: float = 1.0
    opacity: float = 0.8
    text_settings: TextWatermarkSettings | None = field(default_factory=TextWatermarkSettings)
    image_path: Path | None = None

    def to_payload(self) -> dict[str, Any]:
        """Engine-boundary form: camelCase keys, colors packed as [r, g, b, a]."""
        text = self.text_settings
        return {
            "enabled": self.enabled,
            "watermarkType": self.watermark_type.value,
            "position": {
                "horizontal": self.position.horizontal.value,
                "vertical": self.position.vertical.value,
                "marginX": self.position.margin_x,
                "marginY": self.position.margin_y,
            },
            "scale": self.scale,
            "opacity": self.opacity,
            "textSettings": None if text is None else {
                "text": text.text,
                "fontSize": text.font_size,
                "color": text.color.to_packed(),
                "fontFamily": text.font_family,
                "bold": text.bold,
                "italic": text.italic,
                "shadow": text.shadow,
                "shadowColor": text.shadow_color.to_packed(),
                "shadowOffsetX": text.shadow_offset_x,
                "shadowOffsetY": text.shadow_offset_y,
            },
            "imagePath": str(self.image_path) if self.image_path else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "WatermarkSpec":
        """Build a spec from a (possibly partial) payload-shaped mapping.

        Missing keys take their defaults, as do sections that are not
        mappings. Malformed enum or color values raise ``ValidationError``.
        """
        data = _as_mapping(data)
        base = default_spec()
        pos_src = _as_mapping(data.get("position"))
        position = WatermarkPosition(
            horizontal=_enum(HorizontalAlignment, pos_src.get("horizontal"), base.position.horizontal),
            vertical=_enum(VerticalAlignment, pos_src.get("vertical"), base.position.vertical),
            margin_x=int(pos_src.get("marginX", base.position.margin_x)),
            margin_y=int(pos_src.get("marginY", base.position.margin_y)),
        )
        text_settings = None
        raw_text = data.get("textSettings", base.text_settings)
        if isinstance(raw_text, Mapping):
            text_settings = _text_settings_from_dict(raw_text)
        elif raw_text is not None:
            text_settings = base.text_settings
        image_path = data.get("imagePath")
        return WatermarkSpec(
            enabled=bool(data.get("enabled", base.enabled)),
            watermark_type=_enum(WatermarkType, data.get("watermarkType"), base.watermark_type),
            position=position,
            scale=float(data.get("scale", base.scale)),
            opacity=float(data.get("opacity", base.opacity)),
            text_settings=text_settings,
            image_path=Path(image_path) if image_path else None,
        )


def default_spec() -> WatermarkSpec:
    return WatermarkSpec()


def substitute_placeholders(text: str, metadata: Mapping[str, Any]) -> str:
    """Replace recognized ``{token}``s with metadata values.

    Recognized tokens whose value is absent become empty strings. Unknown
    tokens are kept verbatim.
    """
    def _sub(m: re.Match[str]) -> str:
        key = m.group(1)
        if key not in PLACEHOLDER_KEYS:
            return m.group(0)
        value = metadata.get(key)
        return "" if value is None else str(value)

    return _TOKEN_RE.sub(_sub, text)


def check_placeholder_syntax(text: str) -> None:
    """Raise ``ValidationError`` on unbalanced or nested braces."""
    depth = 0
    for i, ch in enumerate(text):
        if ch == "{":
            if depth:
                raise ValidationError(f"Nested '{{' at position {i} in watermark text.")
            depth = 1
        elif ch == "}":
            if not depth:
                raise ValidationError(f"Unmatched '}}' at position {i} in watermark text.")
            depth = 0
    if depth:
        raise ValidationError("Unclosed '{' in watermark text.")


def metadata_from_exif(exif: Mapping[str, Any], filename: str) -> dict[str, str]:
    """Format raw EXIF tags into placeholder values the way the engine does."""
    out: dict[str, str] = {"filename": filename}

    for key, tag in (
        ("camera_make", "Make"),
        ("camera_model", "Model"),
        ("lens_model", "LensModel"),
        ("date_time", "DateTime"),
        ("photographer", "Artist"),
    ):
        v = exif.get(tag)
        if isinstance(v, str):
            out[key] = v

    aperture = _as_float(exif.get("FNumber"))
    if aperture is not None:
        out["aperture"] = f"{aperture:.1f}"
    shutter = _as_float(exif.get("ExposureTime"))
    if shutter is not None and shutter > 0:
        out["shutter_speed"] = f"{shutter:.1f}" if shutter >= 1.0 else f"1/{round(1.0 / shutter)}"
    iso = exif.get("PhotographicSensitivity")
    if isinstance(iso, int) and not isinstance(iso, bool):
        out["iso"] = str(iso)
    focal = _as_float(exif.get("FocalLength"))
    if focal is not None:
        out["focal_length"] = f"{focal:.0f}"
    return out


def anchor_position(
    canvas_size: tuple[int, int],
    mark_size: tuple[int, int],
    position: WatermarkPosition,
) -> tuple[int, int]:
    """Top-left pixel of a watermark of ``mark_size`` on the canvas (never negative)."""
    cw, ch = canvas_size
    mw, mh = mark_size

    if position.horizontal == HorizontalAlignment.LEFT:
        x = position.margin_x
    elif position.horizontal == HorizontalAlignment.CENTER:
        x = (cw - mw) // 2
    else:
        x = cw - mw - position.margin_x

    if position.vertical == VerticalAlignment.TOP:
        y = position.margin_y
    elif position.vertical == VerticalAlignment.CENTER:
        y = (ch - mh) // 2
    else:
        y = ch - mh - position.margin_y

    return max(x, 0), max(y, 0)


def normalize_for_submission(spec: WatermarkSpec) -> WatermarkSpec | None:
    """Frozen, fully-resolved copy for the job description.

    Returns None when the watermark is disabled: the job then carries no
    watermark at all.
    """
    if not spec.enabled:
        return None

    if spec.scale <= 0 or spec.scale > MAX_SCALE:
        raise ValidationError(f"Watermark scale must be in (0, {MAX_SCALE}], got {spec.scale}.")
    if not 0.0 <= spec.opacity <= 1.0:
        raise ValidationError(f"Watermark opacity must be in [0, 1], got {spec.opacity}.")
    if spec.position.margin_x < 0 or spec.position.margin_y < 0:
        raise ValidationError("Watermark margins must be non-negative.")

    text = spec.text_settings or TextWatermarkSettings()
    if text.text is None:
        text = replace(text, text="")
    if text.font_size <= 0:
        raise ValidationError(f"Watermark font size must be positive, got {text.font_size}.")

    image_path = spec.image_path
    if spec.watermark_type == WatermarkType.IMAGE:
        if not image_path:
            raise ValidationError("Image watermark selected but no watermark image is set.")
        image_path = Path(image_path).expanduser()
        if image_path.suffix.lower() not in WATERMARK_IMAGE_SUFFIXES:
            raise ValidationError(f"Unsupported watermark image type: {image_path.name}")
        if not is_readable_file(image_path):
            raise ValidationError(f"Watermark image not found or unreadable: {image_path}")
    else:
        check_placeholder_syntax(text.text)

    return replace(spec, text_settings=text, image_path=image_path)


def _text_settings_from_dict(data: Mapping[str, Any]) -> TextWatermarkSettings:
    base = TextWatermarkSettings()
    color = data.get("color")
    shadow_color = data.get("shadowColor")
    return TextWatermarkSettings(
        text=str(data.get("text") or ""),
        font_family=str(data.get("fontFamily") or base.font_family),
        font_size=float(data.get("fontSize", base.font_size)),
        color=Rgba.from_packed(color) if color is not None else base.color,
        bold=bool(data.get("bold", base.bold)),
        italic=bool(data.get("italic", base.italic)),
        shadow=bool(data.get("shadow", base.shadow)),
        shadow_color=Rgba.from_packed(shadow_color) if shadow_color is not None else base.shadow_color,
        shadow_offset_x=int(data.get("shadowOffsetX", base.shadow_offset_x)),
        shadow_offset_y=int(data.get("shadowOffsetY", base.shadow_offset_y)),
    )


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _enum(enum_cls, value, default):
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {enum_cls.__name__}: {value!r}") from e


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None
