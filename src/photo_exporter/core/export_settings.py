from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from photo_exporter.core.watermark import WatermarkSpec, normalize_for_submission
from photo_exporter.util.errors import ValidationError

DEFAULT_FILENAME_TEMPLATE = "{original_filename}_edited"


class ExportFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    TIFF = "tiff"

    @property
    def extension(self) -> str:
        return {"jpeg": "jpg", "png": "png", "tiff": "tiff"}[self.value]

    @property
    def label(self) -> str:
        return self.value.upper()

    @property
    def extensions(self) -> tuple[str, ...]:
        return ("jpg", "jpeg") if self is ExportFormat.JPEG else (self.extension,)


class ResizeMode(str, Enum):
    LONG_EDGE = "longEdge"
    WIDTH = "width"
    HEIGHT = "height"


@dataclass(frozen=True)
class ResizeSpec:
    mode: ResizeMode = ResizeMode.LONG_EDGE
    value: int = 2048  # pixels
    dont_enlarge: bool = True


@dataclass(frozen=True)
class ExportSettings:
    """User-set export options.

    ``resize`` unset means source resolution. ``strip_gps`` only matters when
    ``keep_metadata`` is set; without metadata GPS goes too.
    """
    format: ExportFormat = ExportFormat.JPEG
    jpeg_quality: int = 90
    resize: ResizeSpec | None = None
    keep_metadata: bool = True
    strip_gps: bool = True
    filename_template: str = DEFAULT_FILENAME_TEMPLATE
    watermark: WatermarkSpec | None = None

    def validate(self) -> None:
        if not 1 <= int(self.jpeg_quality) <= 100:
            raise ValidationError(f"JPEG quality must be 1-100, got {self.jpeg_quality}.")
        if self.resize is not None and self.resize.value <= 0:
            raise ValidationError(f"Resize value must be a positive pixel count, got {self.resize.value}.")

    def to_payload(self, filename_template: str | None = None) -> dict[str, Any]:
        """Job-description form of these settings.

        The ``watermark`` key is omitted entirely unless an enabled watermark
        is present. Raises ``ValidationError`` on malformed values.
        """
        self.validate()
        payload: dict[str, Any] = {
            "jpegQuality": int(self.jpeg_quality),
            "resize": None if self.resize is None else {
                "mode": self.resize.mode.value,
                "value": int(self.resize.value),
                "dontEnlarge": self.resize.dont_enlarge,
            },
            "keepMetadata": self.keep_metadata,
            "stripGps": self.keep_metadata and self.strip_gps,
            "filenameTemplate": self.filename_template if filename_template is None else filename_template,
        }
        watermark = normalize_for_submission(self.watermark) if self.watermark else None
        if watermark is not None:
            payload["watermark"] = watermark.to_payload()
        return payload
