from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from PySide6.QtCore import Qt
from PySide6.QtGui import QPixmap
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDoubleSpinBox,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QProgressBar,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from photo_exporter.core.export_settings import ExportFormat, ExportSettings, ResizeMode, ResizeSpec
from photo_exporter.core.filename_template import FILENAME_VARIABLES
from photo_exporter.core.job import ExportState, ExportStatus
from photo_exporter.core.watermark import (
    ANCHOR_CHOICES,
    MAX_SCALE,
    WATERMARK_FONT_FAMILIES,
    WATERMARK_METADATA_PLACEHOLDERS,
    WatermarkPosition,
    WatermarkSpec,
    WatermarkType,
)
from photo_exporter.gui.controllers import ExportJobController
from photo_exporter.util.errors import PhotoExporterError


def status_text(state: ExportState) -> str:
    if state.status == ExportStatus.EXPORTING:
        return f"Exporting... ({state.progress.current}/{state.progress.total})"
    if state.status == ExportStatus.SUCCESS:
        return "Export successful!"
    if state.status == ExportStatus.ERROR:
        return state.error_message
    if state.status == ExportStatus.CANCELLED:
        return "Export cancelled."
    return ""


class ExportPanel(QWidget):
    """Export options form bound to an ``ExportJobController``."""

    def __init__(
        self,
        controller: ExportJobController,
        settings: ExportSettings,
        engine_check: Callable[[], bool] | None = None,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self.controller = controller
        self.engine_check = engine_check
        self._adjustments: dict[str, Any] = {}
        self._watermark_image: Path | None = settings.watermark.image_path if settings.watermark else None
        self._preview_path: Path | None = None

        root = QVBoxLayout(self)
        root.setContentsMargins(12, 12, 12, 12)
        root.setSpacing(10)

        self.title = QLabel("Export")
        self.title.setProperty("cssClass", "h2")
        root.addWidget(self.title)

        root.addWidget(self._build_file_group())
        root.addWidget(self._build_naming_group())
        root.addWidget(self._build_watermark_group())

        self.progress = QProgressBar()
        self.progress.setVisible(False)
        root.addWidget(self.progress)

        self.status_label = QLabel("")
        self.status_label.setWordWrap(True)
        root.addWidget(self.status_label)

        btn_row = QHBoxLayout()
        self.export_btn = QPushButton("Export")
        self.export_btn.clicked.connect(self._on_export_clicked)
        self.cancel_btn = QPushButton("Cancel")
        self.cancel_btn.clicked.connect(self.controller.cancel)
        btn_row.addStretch(1)
        btn_row.addWidget(self.cancel_btn)
        btn_row.addWidget(self.export_btn)
        root.addLayout(btn_row)
        root.addStretch(1)

        self._populate(settings)
        self.controller.state_changed.connect(self._render_state)
        self.controller.white_balance_ready.connect(self.set_adjustments)
        self.controller.preview_ready.connect(self._show_preview)
        self.controller.preview_cleared.connect(self._clear_preview)
        self._render_state(self.controller.state)
        self._update_mode_widgets()

    def _build_file_group(self) -> QGroupBox:
        group = QGroupBox("File Settings")
        form = QFormLayout(group)

        self.format_combo = QComboBox()
        for fmt in ExportFormat:
            self.format_combo.addItem(fmt.label, fmt.value)
        self.format_combo.currentIndexChanged.connect(self._update_mode_widgets)
        form.addRow("Format", self.format_combo)

        self.quality_spin = QSpinBox()
        self.quality_spin.setRange(1, 100)
        form.addRow("JPEG quality", self.quality_spin)

        self.resize_chk = QCheckBox("Resize")
        self.resize_chk.toggled.connect(self._update_mode_widgets)
        form.addRow(self.resize_chk)

        resize_row = QHBoxLayout()
        self.resize_mode_combo = QComboBox()
        self.resize_mode_combo.addItem("Long Edge", ResizeMode.LONG_EDGE.value)
        self.resize_mode_combo.addItem("Width", ResizeMode.WIDTH.value)
        self.resize_mode_combo.addItem("Height", ResizeMode.HEIGHT.value)
        self.resize_value_spin = QSpinBox()
        self.resize_value_spin.setRange(1, 100000)
        self.resize_value_spin.setSuffix(" px")
        self.dont_enlarge_chk = QCheckBox("Don't enlarge")
        resize_row.addWidget(self.resize_mode_combo)
        resize_row.addWidget(self.resize_value_spin)
        resize_row.addWidget(self.dont_enlarge_chk)
        form.addRow(resize_row)

        self.keep_metadata_chk = QCheckBox("Keep original metadata")
        self.keep_metadata_chk.toggled.connect(self._update_mode_widgets)
        self.strip_gps_chk = QCheckBox("Remove GPS data")
        form.addRow(self.keep_metadata_chk)
        form.addRow(self.strip_gps_chk)
        return group

    def _build_naming_group(self) -> QGroupBox:
        self.naming_group = QGroupBox("File Naming")
        layout = QVBoxLayout(self.naming_group)
        self.template_edit = QLineEdit()
        layout.addWidget(self.template_edit)

        vars_row = QHBoxLayout()
        for token in FILENAME_VARIABLES:
            btn = QPushButton(token)
            btn.clicked.connect(lambda _checked=False, t=token: self.template_edit.insert(t))
            vars_row.addWidget(btn)
        vars_row.addStretch(1)
        layout.addLayout(vars_row)
        return self.naming_group

    def _build_watermark_group(self) -> QGroupBox:
        group = QGroupBox("Watermark")
        form = QFormLayout(group)

        self.watermark_chk = QCheckBox("Add watermark")
        self.watermark_chk.toggled.connect(self._update_mode_widgets)
        form.addRow(self.watermark_chk)

        self.watermark_type_combo = QComboBox()
        for t in WatermarkType:
            self.watermark_type_combo.addItem(t.value, t.value)
        self.watermark_type_combo.currentIndexChanged.connect(self._update_mode_widgets)
        form.addRow("Type", self.watermark_type_combo)

        self.watermark_text_edit = QLineEdit()
        self.watermark_text_edit.setToolTip(
            "\n".join(f"{token}  {label}" for token, label in WATERMARK_METADATA_PLACEHOLDERS)
        )
        form.addRow("Text", self.watermark_text_edit)

        self.font_combo = QComboBox()
        self.font_combo.addItems(list(WATERMARK_FONT_FAMILIES))
        form.addRow("Font", self.font_combo)

        image_row = QHBoxLayout()
        self.watermark_image_label = QLabel("No image selected")
        self.watermark_image_btn = QPushButton("Choose…")
        self.watermark_image_btn.clicked.connect(self._choose_watermark_image)
        image_row.addWidget(self.watermark_image_label, 1)
        image_row.addWidget(self.watermark_image_btn)
        form.addRow("Image", image_row)

        self.anchor_combo = QComboBox()
        for h, v, label in ANCHOR_CHOICES:
            self.anchor_combo.addItem(label, (h, v))
        form.addRow("Position", self.anchor_combo)

        self.opacity_spin = QDoubleSpinBox()
        self.opacity_spin.setRange(0.0, 1.0)
        self.opacity_spin.setSingleStep(0.05)
        form.addRow("Opacity", self.opacity_spin)

        self.scale_spin = QDoubleSpinBox()
        self.scale_spin.setRange(0.1, MAX_SCALE)
        self.scale_spin.setSingleStep(0.1)
        form.addRow("Scale", self.scale_spin)

        preview_row = QHBoxLayout()
        self.preview_btn = QPushButton("Show Preview")
        self.preview_btn.clicked.connect(self._toggle_preview)
        preview_row.addWidget(self.preview_btn)
        preview_row.addStretch(1)
        form.addRow(preview_row)

        self.preview_label = QLabel()
        self.preview_label.setAlignment(Qt.AlignCenter)
        self.preview_label.setVisible(False)
        form.addRow(self.preview_label)
        return group

    def _populate(self, s: ExportSettings) -> None:
        self.format_combo.setCurrentIndex(self.format_combo.findData(s.format.value))
        self.quality_spin.setValue(int(s.jpeg_quality))
        self.resize_chk.setChecked(s.resize is not None)
        resize = s.resize or ResizeSpec()
        self.resize_mode_combo.setCurrentIndex(self.resize_mode_combo.findData(resize.mode.value))
        self.resize_value_spin.setValue(int(resize.value))
        self.dont_enlarge_chk.setChecked(resize.dont_enlarge)
        self.keep_metadata_chk.setChecked(s.keep_metadata)
        self.strip_gps_chk.setChecked(s.strip_gps)
        self.template_edit.setText(s.filename_template)

        wm = s.watermark or WatermarkSpec()
        self._base_watermark = wm
        self.watermark_chk.setChecked(wm.enabled)
        self.watermark_type_combo.setCurrentIndex(self.watermark_type_combo.findData(wm.watermark_type.value))
        if wm.text_settings is not None:
            self.watermark_text_edit.setText(wm.text_settings.text)
            idx = self.font_combo.findText(wm.text_settings.font_family)
            if idx >= 0:
                self.font_combo.setCurrentIndex(idx)
        for i, (h, v, _label) in enumerate(ANCHOR_CHOICES):
            if (h, v) == (wm.position.horizontal, wm.position.vertical):
                self.anchor_combo.setCurrentIndex(i)
        self.opacity_spin.setValue(wm.opacity)
        self.scale_spin.setValue(wm.scale)
        self._show_watermark_image()

    def export_settings(self) -> ExportSettings:
        """Current form values (not validated)."""
        resize = None
        if self.resize_chk.isChecked():
            resize = ResizeSpec(
                mode=ResizeMode(self.resize_mode_combo.currentData()),
                value=self.resize_value_spin.value(),
                dont_enlarge=self.dont_enlarge_chk.isChecked(),
            )
        return ExportSettings(
            format=ExportFormat(self.format_combo.currentData()),
            jpeg_quality=self.quality_spin.value(),
            resize=resize,
            keep_metadata=self.keep_metadata_chk.isChecked(),
            strip_gps=self.strip_gps_chk.isChecked(),
            filename_template=self.template_edit.text(),
            watermark=self.watermark_spec(),
        )

    def watermark_spec(self) -> WatermarkSpec:
        h, v = self.anchor_combo.currentData()
        base = self._base_watermark
        text_settings = base.text_settings
        if text_settings is not None:
            text_settings = replace(
                text_settings,
                text=self.watermark_text_edit.text(),
                font_family=self.font_combo.currentText(),
            )
        return replace(
            base,
            enabled=self.watermark_chk.isChecked(),
            watermark_type=WatermarkType(self.watermark_type_combo.currentData()),
            position=WatermarkPosition(h, v, base.position.margin_x, base.position.margin_y),
            opacity=self.opacity_spin.value(),
            scale=self.scale_spin.value(),
            text_settings=text_settings,
            image_path=self._watermark_image,
        )

    def set_selection(self, targets: Sequence[Path], editor_context: bool = True) -> None:
        self.controller.set_selection(targets, editor_context)
        self._update_mode_widgets()

    def set_adjustments(self, adjustments: Mapping[str, Any]) -> None:
        self._adjustments = dict(adjustments)

    def _on_export_clicked(self) -> None:
        if self.engine_check is not None and not self.engine_check():
            QMessageBox.warning(
                self,
                "Export engine required",
                "The export engine was not found.\n\n"
                "Install photo-export-engine or set PHOTO_EXPORTER_ENGINE_PATH.",
            )
            return
        try:
            self.controller.submit(self.controller.selection, self._adjustments, self.export_settings())
        except PhotoExporterError as e:
            QMessageBox.warning(self, "Cannot export", str(e))

    def _choose_watermark_image(self) -> None:
        path = self.controller.picker.pick_watermark_image()
        if path is None:
            return
        self._watermark_image = path
        self._show_watermark_image()

    def _show_watermark_image(self) -> None:
        self.watermark_image_label.setText(self._watermark_image.name if self._watermark_image else "No image selected")

    def _toggle_preview(self) -> None:
        if self._preview_path is not None:
            self._clear_preview()
            return
        selection = self.controller.selection
        if not selection:
            return
        self.controller.request_preview(selection[0], self._adjustments, self.watermark_spec())

    def _show_preview(self, path: Path) -> None:
        self._preview_path = Path(path)
        pixmap = QPixmap(str(path))
        if pixmap.isNull():
            self.preview_label.setText(self._preview_path.name)
        else:
            self.preview_label.setPixmap(pixmap.scaledToWidth(min(pixmap.width(), 320), Qt.SmoothTransformation))
        self.preview_label.setVisible(True)
        self.preview_btn.setText("Hide Preview")

    def _clear_preview(self) -> None:
        self._preview_path = None
        self.preview_label.clear()
        self.preview_label.setVisible(False)
        self.preview_btn.setText("Show Preview")

    def _render_state(self, state: ExportState) -> None:
        exporting = state.is_exporting
        self.export_btn.setVisible(not exporting)
        self.cancel_btn.setVisible(exporting)
        self.progress.setVisible(exporting and state.progress.total > 1)
        self.progress.setRange(0, max(state.progress.total, 1))
        self.progress.setValue(state.progress.current)
        self.status_label.setText(status_text(state))
        self.export_btn.setText(
            f"Export {len(self.controller.selection)} Image(s)" if self.controller.is_batch_mode else "Export"
        )

    def _update_mode_widgets(self, *_args) -> None:
        jpeg = self.format_combo.currentData() == ExportFormat.JPEG.value
        self.quality_spin.setEnabled(jpeg)
        resizing = self.resize_chk.isChecked()
        self.resize_mode_combo.setEnabled(resizing)
        self.resize_value_spin.setEnabled(resizing)
        self.dont_enlarge_chk.setEnabled(resizing)
        self.strip_gps_chk.setEnabled(self.keep_metadata_chk.isChecked())
        self.naming_group.setVisible(self.controller.is_batch_mode)

        wm_on = self.watermark_chk.isChecked()
        text_mode = self.watermark_type_combo.currentData() == WatermarkType.TEXT.value
        self.watermark_type_combo.setEnabled(wm_on)
        self.watermark_text_edit.setEnabled(wm_on and text_mode)
        self.font_combo.setEnabled(wm_on and text_mode)
        self.watermark_image_btn.setEnabled(wm_on and not text_mode)
        self.anchor_combo.setEnabled(wm_on)
        self.opacity_spin.setEnabled(wm_on)
        self.scale_spin.setEnabled(wm_on)
        self.preview_btn.setEnabled(wm_on and bool(self.controller.selection))
        self._render_state(self.controller.state)
