from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from appdirs import user_log_dir

APP_NAME = "PhotoExporter"

def default_log_path() -> Path:
    return Path(user_log_dir(appname=APP_NAME, appauthor=False)) / "export_log.txt"

@dataclass
class ExportLogger:
    """Append-only export history, one line per event.

    Lines look like ``[2024-06-01 12:30:00] [job 1a2b3c4d] Export completed.``;
    the job tag is the first eight characters of the job id.
    """
    path: Path

    def log(self, message: str, job_id: str | None = None) -> None:
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        tag = f" [job {job_id[:8]}]" if job_id else ""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(f"[{stamp}]{tag} {message}\n")
