from __future__ import annotations

from PySide6.QtCore import QThread, Signal
from pathlib import Path
from typing import Any, Mapping

from photo_exporter.core.job import ExportJob, ExportMode
from photo_exporter.engine.base import ExportEngine
from photo_exporter.util.errors import CancelledByUser

class ExportWorker(QThread):
    # Every signal leads with the job id so stale reports can be told apart.
    progress = Signal(str, int, int)  # job id, current, total
    succeeded = Signal(str)
    failed = Signal(str, str)  # job id, message
    cancelled = Signal(str)

    def __init__(self, engine: ExportEngine, job: ExportJob) -> None:
        super().__init__()
        self.engine = engine
        self.job = job
        self.engine_done = False

    def run(self) -> None:
        job = self.job
        try:
            if job.mode == ExportMode.SINGLE:
                target = job.targets[0]
                self.engine.export_image(
                    original_path=target,
                    output_path=job.output_file,
                    adjustments=job.per_image_adjustments.get(target, {}),
                    export_settings=job.settings_payload,
                )
            else:
                self.engine.batch_export_images(
                    output_folder=job.output_dir,
                    paths=list(job.targets),
                    export_settings=job.settings_payload,
                    output_format=job.output_format,
                    progress_cb=lambda cur, total: self.progress.emit(job.id, int(cur), int(total)),
                )
            self.engine_done = True
            self.succeeded.emit(job.id)
        except CancelledByUser:
            self.engine_done = True
            self.cancelled.emit(job.id)
        except Exception as e:
            self.engine_done = True
            self.failed.emit(job.id, str(e) or e.__class__.__name__)


class WatermarkPreviewWorker(QThread):
    finished_preview = Signal(object)  # Path of the rendered image
    failed = Signal(str)

    def __init__(
        self,
        engine: ExportEngine,
        image_path: Path,
        adjustments: Mapping[str, Any],
        watermark_settings: Mapping[str, Any],
    ) -> None:
        super().__init__()
        self.engine = engine
        self.image_path = image_path
        self.adjustments = adjustments
        self.watermark_settings = watermark_settings

    def run(self) -> None:
        try:
            result = self.engine.generate_watermark_preview(
                self.image_path, self.adjustments, self.watermark_settings
            )
            self.finished_preview.emit(result)
        except Exception as e:
            self.failed.emit(str(e))


class WhiteBalanceSampleWorker(QThread):
    sampled = Signal(float, float)  # temperature, tint (cast, not yet negated)
    failed = Signal(str)

    def __init__(self, engine: ExportEngine, image_path: Path, x: float, y: float, **geometry: Any) -> None:
        super().__init__()
        self.engine = engine
        self.image_path = image_path
        self.x = x
        self.y = y
        self.geometry = geometry

    def run(self) -> None:
        try:
            temperature, tint = self.engine.sample_pixel_for_white_balance(
                self.image_path, self.x, self.y, **self.geometry
            )
            self.sampled.emit(float(temperature), float(tint))
        except Exception as e:
            self.failed.emit(str(e))
