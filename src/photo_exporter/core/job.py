from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Sequence
import uuid

from photo_exporter.core.adjustments import Adjustments, complete_for_engine
from photo_exporter.core.export_settings import ExportSettings
from photo_exporter.core.filename_template import RenderContext, effective_template, resolve, resolve_batch
from photo_exporter.util.errors import NoTargetsError
from photo_exporter.util.paths import base_name


class ExportStatus(str, Enum):
    IDLE = "idle"
    EXPORTING = "exporting"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExportStatus.SUCCESS, ExportStatus.ERROR, ExportStatus.CANCELLED)


class ExportMode(str, Enum):
    SINGLE = "single"  # one file, save-as path
    BATCH = "batch"  # destination folder, templated names


@dataclass(frozen=True)
class ExportProgress:
    current: int = 0
    total: int = 0

    def advanced_to(self, current: int) -> "ExportProgress":
        """Monotonic, capped at ``total``."""
        return replace(self, current=min(max(self.current, int(current)), self.total))


@dataclass(frozen=True)
class ExportState:
    status: ExportStatus = ExportStatus.IDLE
    progress: ExportProgress = field(default_factory=ExportProgress)
    error_message: str = ""

    @property
    def is_exporting(self) -> bool:
        return self.status == ExportStatus.EXPORTING

    def started(self, total: int) -> "ExportState":
        return ExportState(ExportStatus.EXPORTING, ExportProgress(0, total))

    def progressed(self, current: int) -> "ExportState":
        if not self.is_exporting:
            return self
        return replace(self, progress=self.progress.advanced_to(current))

    def succeeded(self) -> "ExportState":
        return self._terminal(ExportStatus.SUCCESS, progress=self.progress.advanced_to(self.progress.total))

    def failed(self, message: str) -> "ExportState":
        return self._terminal(ExportStatus.ERROR, error_message=message)

    def cancelled(self) -> "ExportState":
        return self._terminal(ExportStatus.CANCELLED)

    def _terminal(self, status: ExportStatus, **changes: Any) -> "ExportState":
        # Terminal states are sticky: only a running export can end.
        if not self.is_exporting:
            return self
        return replace(self, status=status, **changes)


IDLE_STATE = ExportState()


@dataclass(frozen=True)
class ExportJob:
    """Job description bound to its own target snapshot.

    Exactly one of ``output_file`` (single mode) or ``output_dir`` (batch
    mode) is set once a destination has been chosen.
    """
    id: str
    targets: tuple[Path, ...]
    settings: ExportSettings
    mode: ExportMode
    filename_template: str
    settings_payload: dict[str, Any]
    per_image_adjustments: dict[Path, dict[str, Any]] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    output_file: Path | None = None
    output_dir: Path | None = None

    @property
    def total(self) -> int:
        return len(self.targets)

    @property
    def output_format(self) -> str:
        return self.settings.format.extension

    def default_output_name(self) -> str:
        """Suggested save-as name for the first target, with extension."""
        ctx = RenderContext(
            original_filename=base_name(self.targets[0]),
            sequence=1,
            timestamp=self.created_at,
        )
        return f"{resolve(self.filename_template, ctx)}.{self.output_format}"

    def planned_outputs(self) -> list[Path]:
        if self.mode == ExportMode.SINGLE:
            return [self.output_file] if self.output_file else []
        if not self.output_dir:
            return []
        names = resolve_batch(self.filename_template, self.targets, self.created_at)
        return [self.output_dir / f"{n}.{self.output_format}" for n in names]

    def with_destination(self, path: Path) -> "ExportJob":
        if self.mode == ExportMode.SINGLE:
            return replace(self, output_file=path, output_dir=None)
        return replace(self, output_dir=path, output_file=None)


def build_export_job(
    targets: Sequence[Path],
    settings: ExportSettings,
    adjustments: Adjustments | None = None,
    editor_context: bool = True,
    now: datetime | None = None,
) -> ExportJob:
    """Assemble and validate a job description (no destination yet).

    Raises ``NoTargetsError`` for an empty selection and ``ValidationError``
    for malformed settings.
    """
    snapshot = tuple(Path(t) for t in targets)
    if not snapshot:
        raise NoTargetsError("No images selected for export.")

    batch = len(snapshot) > 1 or not editor_context
    template = effective_template(settings.filename_template, len(snapshot))
    payload = settings.to_payload(filename_template=template)

    per_image: dict[Path, dict[str, Any]] = {}
    if not batch:
        per_image[snapshot[0]] = complete_for_engine(adjustments)

    return ExportJob(
        id=str(uuid.uuid4()),
        targets=snapshot,
        settings=settings,
        mode=ExportMode.BATCH if batch else ExportMode.SINGLE,
        filename_template=template,
        settings_payload=payload,
        per_image_adjustments=per_image,
        created_at=now or datetime.now(),
    )
