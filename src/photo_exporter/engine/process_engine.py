from __future__ import annotations

import json
import os
from pathlib import Path
import shutil
import subprocess
import tempfile
import threading
from typing import Any, Mapping, Sequence

from photo_exporter.engine.base import ProgressCb
from photo_exporter.util.errors import CancelledByUser, EngineFault

ENGINE_ENV_VAR = "PHOTO_EXPORTER_ENGINE_PATH"
ENGINE_EXECUTABLE = "photo-export-engine"
KILL_GRACE_SECONDS = 5.0

TERMINAL_EVENTS = ("complete", "error", "cancelled")


class ProcessEngine:
    """Engine client that runs one engine process per command.

    Wire format:
    - argv: ``<engine> <command>``
    - stdin: one JSON request object
    - stdout: JSON lines, ``{"event": "progress"|"complete"|"error"|"cancelled", ...}``

    The first terminal event wins; anything after it is ignored. Non-JSON
    stdout lines are treated as engine chatter and skipped.
    """

    def __init__(self, engine_path: str = "") -> None:
        self.engine_path = resolve_engine_path(engine_path)
        self._lock = threading.Lock()
        self._export_proc: subprocess.Popen | None = None
        self._cancel_requested = False

    def export_image(
        self,
        original_path: Path,
        output_path: Path,
        adjustments: Mapping[str, Any],
        export_settings: Mapping[str, Any],
    ) -> None:
        request = {
            "originalPath": str(original_path),
            "outputPath": str(output_path),
            "adjustments": dict(adjustments),
            "exportSettings": dict(export_settings),
        }
        self._run("export_image", request, export=True)

    def batch_export_images(
        self,
        output_folder: Path,
        paths: Sequence[Path],
        export_settings: Mapping[str, Any],
        output_format: str,
        progress_cb: ProgressCb,
    ) -> None:
        request = {
            "outputFolder": str(output_folder),
            "paths": [str(p) for p in paths],
            "exportSettings": dict(export_settings),
            "outputFormat": output_format,
        }
        self._run("batch_export_images", request, export=True, progress_cb=progress_cb)

    def cancel_export(self) -> None:
        with self._lock:
            self._cancel_requested = True
            proc = self._export_proc
        # Without a process yet, the pending request is honoured when one starts.
        if proc is not None:
            _terminate(proc)

    def generate_watermark_preview(
        self,
        image_path: Path,
        adjustments: Mapping[str, Any],
        watermark_settings: Mapping[str, Any],
    ) -> Path:
        result = self._run(
            "generate_watermark_preview",
            {
                "imagePath": str(image_path),
                "adjustments": dict(adjustments),
                "watermarkSettings": dict(watermark_settings),
            },
        )
        path = result.get("path")
        if not path:
            raise EngineFault("Engine returned no preview image.")
        return Path(path)

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
        result = self._run(
            "sample_pixel_for_white_balance",
            {
                "imagePath": str(image_path),
                "x": x,
                "y": y,
                "cropX": crop_x,
                "cropY": crop_y,
                "rotation": rotation,
                "flipHorizontal": flip_horizontal,
                "flipVertical": flip_vertical,
            },
        )
        try:
            return float(result["temperature"]), float(result["tint"])
        except (KeyError, TypeError, ValueError) as e:
            raise EngineFault(f"Engine returned an invalid white balance sample: {result}") from e

    def _run(
        self,
        command: str,
        request: dict[str, Any],
        export: bool = False,
        progress_cb: ProgressCb | None = None,
    ) -> dict[str, Any]:
        cmd = [self.engine_path, command]
        cancel_requested = False
        with tempfile.TemporaryFile(mode="w+", encoding="utf-8") as err:
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=err,
                    text=True,
                    encoding="utf-8",
                )
            except FileNotFoundError as e:
                if export:
                    with self._lock:
                        self._cancel_requested = False
                raise EngineFault(_engine_missing_message()) from e

            if export:
                with self._lock:
                    self._export_proc = proc
                    pending = self._cancel_requested
                if pending:
                    _terminate(proc)
            try:
                terminal = _read_events(proc, request, progress_cb)
                proc.wait()
            except BaseException:
                _kill_if_running(proc)
                proc.wait()
                raise
            finally:
                if export:
                    with self._lock:
                        cancel_requested = self._cancel_requested
                        self._export_proc = None
                        self._cancel_requested = False

            err.seek(0)
            stderr = err.read().strip()

        return _outcome(terminal, proc.returncode, cancel_requested, stderr)


def _read_events(
    proc: subprocess.Popen,
    request: dict[str, Any],
    progress_cb: ProgressCb | None,
) -> dict[str, Any] | None:
    try:
        proc.stdin.write(json.dumps(request))
        proc.stdin.close()
    except BrokenPipeError:
        # Engine exited before reading; its exit status tells the story.
        pass

    terminal: dict[str, Any] | None = None
    for line in proc.stdout:
        event = _parse_event(line)
        if event is None:
            continue
        kind = event.get("event")
        if kind == "progress" and terminal is None:
            if progress_cb:
                progress_cb(int(event.get("current", 0)), int(event.get("total", 0)))
        elif kind in TERMINAL_EVENTS and terminal is None:
            terminal = event
    return terminal


def _parse_event(line: str) -> dict[str, Any] | None:
    line = line.strip()
    if not line:
        return None
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


def _outcome(
    terminal: dict[str, Any] | None,
    returncode: int | None,
    cancel_requested: bool,
    stderr: str,
) -> dict[str, Any]:
    if terminal is not None:
        kind = terminal["event"]
        if kind == "complete":
            return terminal
        if kind == "cancelled":
            raise CancelledByUser("Export cancelled.")
        raise EngineFault(str(terminal.get("message") or "Engine reported an error."))
    if cancel_requested:
        raise CancelledByUser("Export cancelled.")
    if returncode != 0:
        raise EngineFault(stderr or f"Engine exited with code {returncode}.")
    return {}


def _terminate(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        proc.terminate()
        # SIGKILL if the engine ignores SIGTERM
        timer = threading.Timer(KILL_GRACE_SECONDS, _kill_if_running, args=(proc,))
        timer.daemon = True
        timer.start()


def _kill_if_running(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        proc.kill()


def resolve_engine_path(configured: str = "") -> str:
    """Resolve the engine executable.

    Resolution order:
    1) PHOTO_EXPORTER_ENGINE_PATH env var (explicit override)
    2) Path configured in settings
    3) PATH lookup
    4) Fallback: bare executable name (fails at launch with a friendly error)
    """
    for candidate in (os.environ.get(ENGINE_ENV_VAR), configured):
        if candidate and Path(candidate).exists():
            return str(candidate)

    which = shutil.which(ENGINE_EXECUTABLE)
    if which:
        return which

    return ENGINE_EXECUTABLE


def _engine_missing_message() -> str:
    return (
        f"Export engine not found. Install {ENGINE_EXECUTABLE} or set {ENGINE_ENV_VAR}, "
        "or choose the engine executable in settings."
    )


def is_engine_available(configured: str = "") -> bool:
    path = resolve_engine_path(configured)
    if path == ENGINE_EXECUTABLE:
        return shutil.which(ENGINE_EXECUTABLE) is not None
    return Path(path).exists()
