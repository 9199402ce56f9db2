"""Application entrypoint.

Run in development:
    python -m photo_exporter.app [image ...]

Paths on the command line become the export selection; exactly one path is
treated as the image open in the editor.
"""

from __future__ import annotations

import sys
from pathlib import Path
from PySide6.QtWidgets import QApplication

from photo_exporter.core.export_log import ExportLogger, default_log_path
from photo_exporter.core.settings import AppSettings
from photo_exporter.engine.process_engine import ProcessEngine, is_engine_available
from photo_exporter.gui.controllers import ExportJobController
from photo_exporter.gui.dialogs import QtPathPicker
from photo_exporter.gui.export_panel import ExportPanel


def main() -> int:
    app = QApplication(sys.argv)

    settings = AppSettings.load()
    engine = ProcessEngine(settings.engine_path)
    picker = QtPathPicker(start_dir=settings.last_output_dir)
    controller = ExportJobController(
        engine=engine,
        picker=picker,
        logger=ExportLogger(default_log_path()),
        settings=settings,
    )

    panel = ExportPanel(
        controller,
        settings.export_settings(),
        engine_check=lambda: is_engine_available(settings.engine_path),
    )
    picker.parent = panel
    targets = [Path(a) for a in app.arguments()[1:]]
    panel.set_selection(targets, editor_context=len(targets) == 1)
    panel.setWindowTitle("Photo Exporter")
    panel.show()

    code = app.exec()
    settings.save()
    return code


if __name__ == "__main__":
    raise SystemExit(main())
