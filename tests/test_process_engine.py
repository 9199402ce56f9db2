from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from photo_exporter.engine import process_engine
from photo_exporter.engine.process_engine import ProcessEngine, resolve_engine_path
from photo_exporter.util.errors import CancelledByUser, EngineFault


class _Stdin:
    def __init__(self) -> None:
        self.data = ""
        self.closed = False

    def write(self, s: str) -> int:
        self.data += s
        return len(s)

    def close(self) -> None:
        self.closed = True


class FakeProc:
    def __init__(self, lines: Iterable[str], exit_code: int = 0, stderr_text: str = "", stderr=None) -> None:
        self.stdin = _Stdin()
        self.stdout = lines
        self.returncode: int | None = None
        self.exit_code = exit_code
        self.terminated = False
        self.killed = False
        if stderr is not None and stderr_text:
            stderr.write(stderr_text)

    def poll(self) -> int | None:
        return self.returncode

    def wait(self, timeout: float | None = None) -> int:
        if self.returncode is None:
            self.returncode = self.exit_code
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    def request(self) -> dict[str, Any]:
        return json.loads(self.stdin.data)


def _events(*events: dict) -> list[str]:
    return [json.dumps(e) + "\n" for e in events]


def _install(monkeypatch, make: Callable[..., FakeProc]) -> list[tuple[list[str], FakeProc]]:
    launched: list[tuple[list[str], FakeProc]] = []

    def fake_popen(cmd, **kwargs):
        proc = make(stderr=kwargs.get("stderr"))
        launched.append((cmd, proc))
        return proc

    monkeypatch.setattr(process_engine.subprocess, "Popen", fake_popen)
    return launched


def test_export_image_success(monkeypatch) -> None:
    launched = _install(monkeypatch, lambda stderr: FakeProc(_events({"event": "complete"}), stderr=stderr))
    engine = ProcessEngine("/opt/engine")
    engine.export_image(Path("/in/a.jpg"), Path("/out/a_edited.jpg"), {"tint": 1.0}, {"jpegQuality": 90})

    cmd, proc = launched[0]
    assert cmd[1] == "export_image"
    assert proc.stdin.closed
    req = proc.request()
    assert req["originalPath"] == "/in/a.jpg"
    assert req["outputPath"] == "/out/a_edited.jpg"
    assert req["adjustments"] == {"tint": 1.0}
    assert req["exportSettings"] == {"jpegQuality": 90}


def test_batch_reports_progress_until_terminal_event(monkeypatch) -> None:
    lines = [
        "engine warming up\n",
        *_events(
            {"event": "progress", "current": 1, "total": 3},
            {"event": "progress", "current": 2, "total": 3},
            {"event": "complete"},
            {"event": "progress", "current": 3, "total": 3},
            {"event": "error", "message": "too late"},
        ),
    ]
    launched = _install(monkeypatch, lambda stderr: FakeProc(lines, stderr=stderr))
    seen: list[tuple[int, int]] = []
    ProcessEngine("/opt/engine").batch_export_images(
        Path("/out"), [Path("a.jpg"), Path("b.jpg"), Path("c.jpg")], {}, "jpg", lambda c, t: seen.append((c, t))
    )
    assert seen == [(1, 3), (2, 3)]
    req = launched[0][1].request()
    assert req["outputFolder"] == "/out"
    assert req["paths"] == ["a.jpg", "b.jpg", "c.jpg"]
    assert req["outputFormat"] == "jpg"


def test_error_event_message_is_passed_through(monkeypatch) -> None:
    _install(monkeypatch, lambda stderr: FakeProc(_events({"event": "error", "message": "disk full"}), 1, stderr=stderr))
    with pytest.raises(EngineFault, match="^disk full$"):
        ProcessEngine("/opt/engine").export_image(Path("a"), Path("b"), {}, {})


def test_cancelled_event_raises(monkeypatch) -> None:
    _install(monkeypatch, lambda stderr: FakeProc(_events({"event": "cancelled"}), stderr=stderr))
    with pytest.raises(CancelledByUser):
        ProcessEngine("/opt/engine").batch_export_images(Path("/out"), [Path("a")], {}, "jpg", lambda c, t: None)


def test_nonzero_exit_uses_stderr(monkeypatch) -> None:
    _install(monkeypatch, lambda stderr: FakeProc([], 2, "segfault in decoder", stderr=stderr))
    with pytest.raises(EngineFault, match="segfault in decoder"):
        ProcessEngine("/opt/engine").export_image(Path("a"), Path("b"), {}, {})


def test_nonzero_exit_without_stderr(monkeypatch) -> None:
    _install(monkeypatch, lambda stderr: FakeProc([], 3, stderr=stderr))
    with pytest.raises(EngineFault, match="code 3"):
        ProcessEngine("/opt/engine").export_image(Path("a"), Path("b"), {}, {})


def test_missing_engine_is_reported(monkeypatch) -> None:
    def boom(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(process_engine.subprocess, "Popen", boom)
    with pytest.raises(EngineFault, match="PHOTO_EXPORTER_ENGINE_PATH"):
        ProcessEngine("/nope/engine").export_image(Path("a"), Path("b"), {}, {})


def test_cancel_terminates_running_export(monkeypatch) -> None:
    monkeypatch.setattr(process_engine, "KILL_GRACE_SECONDS", 0.0)
    engine = ProcessEngine("/opt/engine")
    procs: list[FakeProc] = []

    def lines():
        yield json.dumps({"event": "progress", "current": 1, "total": 2}) + "\n"
        engine.cancel_export()
        # terminated engine closes stdout without a terminal event

    def make(stderr):
        proc = FakeProc(lines(), stderr=stderr)
        procs.append(proc)
        return proc

    _install(monkeypatch, make)
    with pytest.raises(CancelledByUser):
        engine.batch_export_images(Path("/out"), [Path("a"), Path("b")], {}, "jpg", lambda c, t: None)
    assert procs[0].terminated
    assert not procs[0].killed


def test_cancel_before_process_starts_is_honoured(monkeypatch) -> None:
    monkeypatch.setattr(process_engine, "KILL_GRACE_SECONDS", 0.0)
    procs: list[FakeProc] = []

    def make(stderr):
        proc = FakeProc([], stderr=stderr)
        procs.append(proc)
        return proc

    _install(monkeypatch, make)
    engine = ProcessEngine("/opt/engine")
    engine.cancel_export()
    with pytest.raises(CancelledByUser):
        engine.batch_export_images(Path("/out"), [Path("a")], {}, "jpg", lambda c, t: None)
    assert procs[0].terminated

    # the request is consumed by the export it cancelled
    _install(monkeypatch, lambda stderr: FakeProc(_events({"event": "complete"}), stderr=stderr))
    engine.export_image(Path("a"), Path("b"), {}, {})


def test_watermark_preview_returns_path(monkeypatch) -> None:
    launched = _install(
        monkeypatch,
        lambda stderr: FakeProc(_events({"event": "complete", "path": "/tmp/preview.png"}), stderr=stderr),
    )
    out = ProcessEngine("/opt/engine").generate_watermark_preview(Path("/in/a.jpg"), {"tint": 0}, {"opacity": 0.5})
    assert out == Path("/tmp/preview.png")
    req = launched[0][1].request()
    assert req["imagePath"] == "/in/a.jpg"
    assert req["watermarkSettings"] == {"opacity": 0.5}


def test_watermark_preview_without_path_fails(monkeypatch) -> None:
    _install(monkeypatch, lambda stderr: FakeProc(_events({"event": "complete"}), stderr=stderr))
    with pytest.raises(EngineFault):
        ProcessEngine("/opt/engine").generate_watermark_preview(Path("a"), {}, {})


def test_white_balance_sample(monkeypatch) -> None:
    launched = _install(
        monkeypatch,
        lambda stderr: FakeProc(_events({"event": "complete", "temperature": 14, "tint": "-2.5"}), stderr=stderr),
    )
    out = ProcessEngine("/opt/engine").sample_pixel_for_white_balance(
        Path("/in/a.jpg"), 120, 80, crop_x=10, rotation=90.0, flip_vertical=True
    )
    assert out == (14.0, -2.5)
    req = launched[0][1].request()
    assert (req["x"], req["y"], req["cropX"], req["cropY"]) == (120, 80, 10, None)
    assert req["rotation"] == 90.0
    assert req["flipVertical"] is True


def test_white_balance_sample_requires_values(monkeypatch) -> None:
    _install(monkeypatch, lambda stderr: FakeProc(_events({"event": "complete"}), stderr=stderr))
    with pytest.raises(EngineFault):
        ProcessEngine("/opt/engine").sample_pixel_for_white_balance(Path("a"), 0, 0)


def test_resolve_engine_path_order(monkeypatch, tmp_path: Path) -> None:
    env_engine = tmp_path / "env-engine"
    env_engine.write_text("", encoding="utf-8")
    cfg_engine = tmp_path / "cfg-engine"
    cfg_engine.write_text("", encoding="utf-8")
    monkeypatch.setattr(process_engine.shutil, "which", lambda name: None)

    monkeypatch.setenv("PHOTO_EXPORTER_ENGINE_PATH", str(env_engine))
    assert resolve_engine_path(str(cfg_engine)) == str(env_engine)

    monkeypatch.delenv("PHOTO_EXPORTER_ENGINE_PATH")
    assert resolve_engine_path(str(cfg_engine)) == str(cfg_engine)
    assert resolve_engine_path(str(tmp_path / "missing")) == "photo-export-engine"

    monkeypatch.setattr(process_engine.shutil, "which", lambda name: "/usr/bin/photo-export-engine")
    assert resolve_engine_path("") == "/usr/bin/photo-export-engine"


def test_is_engine_available(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("PHOTO_EXPORTER_ENGINE_PATH", raising=False)
    monkeypatch.setattr(process_engine.shutil, "which", lambda name: None)
    assert not process_engine.is_engine_available(str(tmp_path / "missing"))

    engine = tmp_path / "engine"
    engine.write_text("", encoding="utf-8")
    assert process_engine.is_engine_available(str(engine))
