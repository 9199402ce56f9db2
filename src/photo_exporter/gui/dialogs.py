from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence

from PySide6.QtWidgets import QFileDialog, QWidget

from photo_exporter.core.export_settings import ExportFormat
from photo_exporter.core.watermark import WATERMARK_IMAGE_SUFFIXES


class PathPicker(Protocol):
    """File-system selection collaborator. ``None`` means the user cancelled."""

    def pick_output_file(self, default_name: str, formats: Sequence[ExportFormat]) -> Path | None:
        ...

    def pick_output_folder(self, title: str) -> Path | None:
        ...

    def pick_watermark_image(self) -> Path | None:
        ...


class QtPathPicker:
    def __init__(self, parent: QWidget | None = None, start_dir: str = "") -> None:
        self.parent = parent
        self.start_dir = start_dir

    def pick_output_file(self, default_name: str, formats: Sequence[ExportFormat]) -> Path | None:
        filters = ";;".join(
            f"{f.label} ({' '.join('*.' + ext for ext in f.extensions)})" for f in formats
        )
        start = str(Path(self.start_dir) / default_name) if self.start_dir else default_name
        selected, _ = QFileDialog.getSaveFileName(self.parent, "Save Edited Image", start, filters)
        return self._remember(selected)

    def pick_output_folder(self, title: str) -> Path | None:
        selected = QFileDialog.getExistingDirectory(self.parent, title, self.start_dir or str(Path.home()))
        return self._remember(selected, is_dir=True)

    def pick_watermark_image(self) -> Path | None:
        patterns = " ".join(f"*{s}" for s in sorted(WATERMARK_IMAGE_SUFFIXES))
        selected, _ = QFileDialog.getOpenFileName(
            self.parent, "Select Watermark Image", self.start_dir, f"Images ({patterns})"
        )
        return Path(selected) if selected else None

    def _remember(self, selected: str, is_dir: bool = False) -> Path | None:
        if not selected:
            return None
        p = Path(selected)
        self.start_dir = str(p if is_dir else p.parent)
        return p
