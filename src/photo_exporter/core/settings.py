from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
import json
from typing import Any
from appdirs import user_config_dir

from photo_exporter.core.export_settings import (
    DEFAULT_FILENAME_TEMPLATE,
    ExportFormat,
    ExportSettings,
    ResizeMode,
    ResizeSpec,
)
from photo_exporter.core.watermark import WatermarkSpec, default_spec
from photo_exporter.util.errors import ValidationError

APP_NAME = "PhotoExporter"

def _config_path() -> Path:
    cfg_dir = Path(user_config_dir(appname=APP_NAME, appauthor=False))
    cfg_dir.mkdir(parents=True, exist_ok=True)
    return cfg_dir / "settings.json"

@dataclass
class AppSettings:
    """User-persistent export preferences.

    Stored in: ~/Library/Application Support/PhotoExporter/settings.json (macOS)
    """
    last_output_dir: str = ""
    file_format: str = ExportFormat.JPEG.value
    jpeg_quality: int = 90
    resize_enabled: bool = False
    resize_mode: str = ResizeMode.LONG_EDGE.value
    resize_value: int = 2048
    dont_enlarge: bool = True
    keep_metadata: bool = True
    strip_gps: bool = True
    filename_template: str = DEFAULT_FILENAME_TEMPLATE
    engine_path: str = ""
    watermark: dict[str, Any] = field(default_factory=lambda: default_spec().to_payload())

    @classmethod
    def load(cls, path: Path | None = None) -> "AppSettings":
        p = path or _config_path()
        if not p.exists():
            return cls()
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
            return cls(**data)
        except Exception:
            # Fail safe: a corrupt file must not block exporting
            return cls()

    def save(self, path: Path | None = None) -> None:
        p = path or _config_path()
        p.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")

    def watermark_spec(self) -> WatermarkSpec:
        try:
            return WatermarkSpec.from_dict(self.watermark)
        except (AttributeError, TypeError, ValueError, ValidationError):
            return default_spec()

    def export_settings(self) -> ExportSettings:
        try:
            fmt = ExportFormat(self.file_format)
        except ValueError:
            fmt = ExportFormat.JPEG
        try:
            mode = ResizeMode(self.resize_mode)
        except ValueError:
            mode = ResizeMode.LONG_EDGE
        resize = ResizeSpec(mode, _int(self.resize_value, 2048), self.dont_enlarge) if self.resize_enabled else None
        return ExportSettings(
            format=fmt,
            jpeg_quality=_int(self.jpeg_quality, 90),
            resize=resize,
            keep_metadata=self.keep_metadata,
            strip_gps=self.strip_gps,
            filename_template=self.filename_template,
            watermark=self.watermark_spec(),
        )

    def remember(self, settings: ExportSettings) -> None:
        self.file_format = settings.format.value
        self.jpeg_quality = int(settings.jpeg_quality)
        self.resize_enabled = settings.resize is not None
        if settings.resize is not None:
            self.resize_mode = settings.resize.mode.value
            self.resize_value = int(settings.resize.value)
            self.dont_enlarge = settings.resize.dont_enlarge
        self.keep_metadata = settings.keep_metadata
        self.strip_gps = settings.strip_gps
        self.filename_template = settings.filename_template
        if settings.watermark is not None:
            self.watermark = settings.watermark.to_payload()


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
