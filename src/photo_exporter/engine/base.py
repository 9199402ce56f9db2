from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping, Protocol, Sequence

ProgressCb = Callable[[int, int], None]  # current, total


class ExportEngine(Protocol):
    """Command interface of the external image-processing engine.

    Export commands block until the engine reports a terminal outcome and are
    meant to run on a worker thread. Returning normally means success;
    ``EngineFault`` and ``CancelledByUser`` report the other outcomes.
    """

    def export_image(
        self,
        original_path: Path,
        output_path: Path,
        adjustments: Mapping[str, Any],
        export_settings: Mapping[str, Any],
    ) -> None:
        ...

    def batch_export_images(
        self,
        output_folder: Path,
        paths: Sequence[Path],
        export_settings: Mapping[str, Any],
        output_format: str,
        progress_cb: ProgressCb,
    ) -> None:
        """Adjustments for each path come from that image's stored edit state."""
        ...

    def cancel_export(self) -> None:
        """Best-effort; the outcome arrives through the running export call."""
        ...

    def generate_watermark_preview(
        self,
        image_path: Path,
        adjustments: Mapping[str, Any],
        watermark_settings: Mapping[str, Any],
    ) -> Path:
        ...

    def sample_pixel_for_white_balance(
        self,
        image_path: Path,
        x: float,
        y: float,
        crop_x: float | None = None,
        crop_y: float | None = None,
        rotation: float | None = None,
        flip_horizontal: bool | None = None,
        flip_vertical: bool | None = None,
    ) -> tuple[float, float]:
        """Existing (temperature, tint) cast at the pixel."""
        ...
