from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from PySide6.QtCore import QObject, Signal, Slot

from photo_exporter.core.adjustments import Adjustments, apply_white_balance_sample, complete_for_engine
from photo_exporter.core.export_log import ExportLogger
from photo_exporter.core.export_settings import ExportFormat, ExportSettings
from photo_exporter.core.job import IDLE_STATE, ExportJob, ExportMode, ExportState, build_export_job
from photo_exporter.core.settings import AppSettings
from photo_exporter.core.watermark import WatermarkSpec, normalize_for_submission
from photo_exporter.engine.base import ExportEngine
from photo_exporter.gui.dialogs import PathPicker
from photo_exporter.gui.workers import ExportWorker, WatermarkPreviewWorker, WhiteBalanceSampleWorker
from photo_exporter.util.errors import ExportBusyError, ValidationError

class ExportJobController(QObject):
    """Owns the export lifecycle for one panel.

    At most one export, one watermark preview and one white-balance sample
    are outstanding at a time; extra requests are rejected, not queued.
    """
    state_changed = Signal(object)  # ExportState
    preview_ready = Signal(object)  # Path
    preview_cleared = Signal()
    white_balance_ready = Signal(object)  # adjustments with corrected temperature/tint
    white_balance_failed = Signal(str)

    def __init__(
        self,
        engine: ExportEngine,
        picker: PathPicker,
        logger: ExportLogger | None = None,
        settings: AppSettings | None = None,
    ) -> None:
        super().__init__()
        self.engine = engine
        self.picker = picker
        self.logger = logger
        self.settings = settings
        self._state: ExportState = IDLE_STATE
        self._selection: tuple[Path, ...] = ()
        self._editor_context = True
        self._active_job: ExportJob | None = None
        self._export_worker: ExportWorker | None = None
        self._preview_worker: WatermarkPreviewWorker | None = None
        self._wb_worker: WhiteBalanceSampleWorker | None = None
        self._wb_base: dict[str, Any] = {}

    @property
    def state(self) -> ExportState:
        return self._state

    @property
    def active_job(self) -> ExportJob | None:
        return self._active_job

    @property
    def selection(self) -> tuple[Path, ...]:
        return self._selection

    @property
    def editor_context(self) -> bool:
        return self._editor_context

    @property
    def is_batch_mode(self) -> bool:
        return len(self._selection) > 1 or not self._editor_context

    @property
    def preview_busy(self) -> bool:
        return self._preview_worker is not None

    def set_selection(self, targets: Sequence[Path], editor_context: bool = True) -> None:
        """Record the current selection.

        A different selection resets a finished export back to Idle; a running
        export keeps its own target snapshot and is left alone.
        """
        snapshot = tuple(Path(t) for t in targets)
        changed = snapshot != self._selection or editor_context != self._editor_context
        self._selection = snapshot
        self._editor_context = editor_context
        if changed and not self._state.is_exporting:
            self._active_job = None
            self._set_state(IDLE_STATE)

    def submit(
        self,
        targets: Sequence[Path],
        adjustments: Adjustments | None,
        settings: ExportSettings,
        editor_context: bool | None = None,
    ) -> ExportJob | None:
        """Start an export; returns the job, or None if the user declined the destination.

        Raises ``ExportBusyError`` while another export runs, ``NoTargetsError``
        for an empty selection and ``ValidationError`` for malformed settings;
        in those cases the state is left untouched.
        """
        if self._state.is_exporting:
            raise ExportBusyError("An export is already running.")
        context = self._editor_context if editor_context is None else editor_context
        job = build_export_job(targets, settings, adjustments, editor_context=context)

        self._active_job = job
        self._set_state(self._state.started(job.total))
        self._log(f"Export submitted: {job.total} image(s), {job.mode.value} mode.", job.id)

        try:
            destination = self._pick_destination(job)
            if destination is None:
                self._log("Destination selection cancelled.", job.id)
                self._active_job = None
                self._set_state(IDLE_STATE)
                return None

            job = job.with_destination(destination)
            self._active_job = job
            self._log(f"Writing to {destination}", job.id)
            self._remember(job, settings)
            self._start_worker(job)
        except Exception as e:
            self._on_failed(job.id, str(e) or "Failed to start export.")
        return job

    def cancel(self) -> None:
        if not self._state.is_exporting or self._active_job is None:
            return
        self._log("Cancellation requested.", self._active_job.id)
        worker = self._export_worker
        if worker is not None and worker.engine_done:
            # Outcome already reported; a cancel now would carry into the next export.
            return
        try:
            self.engine.cancel_export()
        except Exception as e:
            # The engine's terminal report stays authoritative.
            self._log(f"Cancel request failed: {e}", self._active_job.id)

    def request_preview(self, image_path: Path, adjustments: Adjustments | None, watermark: WatermarkSpec) -> bool:
        """Render a watermark preview off-thread. Returns False if rejected."""
        if self._preview_worker is not None:
            return False
        try:
            spec = normalize_for_submission(replace(watermark, enabled=True))
        except ValidationError as e:
            self._log(f"Watermark preview skipped: {e}")
            self.preview_cleared.emit()
            return False

        worker = WatermarkPreviewWorker(
            engine=self.engine,
            image_path=Path(image_path),
            adjustments=complete_for_engine(adjustments),
            watermark_settings=spec.to_payload(),
        )
        self._preview_worker = worker
        worker.finished_preview.connect(self._on_preview_ready)
        worker.failed.connect(self._on_preview_failed)
        worker.start()
        return True

    def request_white_balance(
        self,
        image_path: Path,
        x: float,
        y: float,
        adjustments: Adjustments | None,
        **geometry: Any,
    ) -> bool:
        if self._wb_worker is not None:
            return False
        worker = WhiteBalanceSampleWorker(self.engine, Path(image_path), x, y, **geometry)
        self._wb_worker = worker
        self._wb_base = dict(adjustments or {})
        worker.sampled.connect(self._on_wb_sampled)
        worker.failed.connect(self._on_wb_failed)
        worker.start()
        return True

    def _pick_destination(self, job: ExportJob) -> Path | None:
        if job.mode == ExportMode.BATCH:
            return self.picker.pick_output_folder(f"Select Folder to Export {job.total} Image(s)")
        return self.picker.pick_output_file(job.default_output_name(), list(ExportFormat))

    def _remember(self, job: ExportJob, settings: ExportSettings) -> None:
        if self.settings is None:
            return
        folder = job.output_dir if job.mode == ExportMode.BATCH else job.output_file.parent
        self.settings.last_output_dir = str(folder)
        self.settings.remember(settings)

    def _start_worker(self, job: ExportJob) -> None:
        worker = ExportWorker(engine=self.engine, job=job)
        self._export_worker = worker
        worker.progress.connect(self._on_progress)
        worker.succeeded.connect(self._on_succeeded)
        worker.failed.connect(self._on_failed)
        worker.cancelled.connect(self._on_cancelled)
        worker.start()

    @Slot(str, int, int)
    def _on_progress(self, job_id: str, current: int, total: int) -> None:
        if self._is_current(job_id):
            self._set_state(self._state.progressed(current))

    @Slot(str)
    def _on_succeeded(self, job_id: str) -> None:
        self._finish(job_id, self._state.succeeded(), "completed")

    @Slot(str, str)
    def _on_failed(self, job_id: str, message: str) -> None:
        self._finish(job_id, self._state.failed(message), f"failed: {message}")

    @Slot(str)
    def _on_cancelled(self, job_id: str) -> None:
        self._finish(job_id, self._state.cancelled(), "cancelled")

    def _finish(self, job_id: str, new_state: ExportState, outcome: str) -> None:
        if not self._is_current(job_id):
            return
        if new_state is self._state:
            self._log(f"Ignored late outcome ({outcome}); already {self._state.status.value}.", job_id)
            return
        self._retire_export_worker()
        self._log(f"Export {outcome}.", job_id)
        self._set_state(new_state)

    def _retire_export_worker(self) -> None:
        worker = self._export_worker
        self._export_worker = None
        if worker is not None:
            worker.quit()
            worker.wait()

    def _is_current(self, job_id: str) -> bool:
        return self._active_job is not None and self._active_job.id == job_id

    @Slot(object)
    def _on_preview_ready(self, path: Path) -> None:
        self._release_preview_worker()
        self.preview_ready.emit(path)

    @Slot(str)
    def _on_preview_failed(self, err: str) -> None:
        self._release_preview_worker()
        self._log(f"Watermark preview failed: {err}")
        self.preview_cleared.emit()

    def _release_preview_worker(self) -> None:
        worker = self._preview_worker
        self._preview_worker = None
        if worker is not None:
            worker.quit()
            worker.wait()

    @Slot(float, float)
    def _on_wb_sampled(self, temperature: float, tint: float) -> None:
        base = self._wb_base
        self._release_wb_worker()
        self.white_balance_ready.emit(apply_white_balance_sample(base, temperature, tint))

    @Slot(str)
    def _on_wb_failed(self, err: str) -> None:
        self._release_wb_worker()
        self._log(f"White balance sample failed: {err}")
        self.white_balance_failed.emit(err)

    def _release_wb_worker(self) -> None:
        worker = self._wb_worker
        self._wb_worker = None
        self._wb_base = {}
        if worker is not None:
            worker.quit()
            worker.wait()

    def _set_state(self, state: ExportState) -> None:
        self._state = state
        self.state_changed.emit(state)

    def _log(self, message: str, job_id: str | None = None) -> None:
        if self.logger is not None:
            self.logger.log(message, job_id)
