from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
import re
from typing import Sequence

from photo_exporter.util.paths import base_name

FILENAME_VARIABLES = (
    "{original_filename}",
    "{sequence}",
    "{YYYY}",
    "{MM}",
    "{DD}",
    "{hh}",
    "{mm}",
)
SEQUENCE_TOKEN = "{sequence}"

_TOKEN_RE = re.compile(r"\{([^{}]*)\}")


@dataclass(frozen=True)
class RenderContext:
    original_filename: str  # base name, no extension
    sequence: int  # 1-based position in the batch
    timestamp: datetime  # export wall-clock time

    def tokens(self) -> dict[str, str]:
        ts = self.timestamp
        return {
            "original_filename": self.original_filename,
            "sequence": str(self.sequence),
            "YYYY": f"{ts.year:04d}",
            "MM": f"{ts.month:02d}",
            "DD": f"{ts.day:02d}",
            "hh": f"{ts.hour:02d}",
            "mm": f"{ts.minute:02d}",
        }


def resolve(template: str, context: RenderContext) -> str:
    """Expand reserved tokens; unknown ``{...}`` tokens are left as-is."""
    values = context.tokens()

    def _sub(m: re.Match[str]) -> str:
        return values.get(m.group(1), m.group(0))

    return _TOKEN_RE.sub(_sub, template)


def effective_template(template: str, target_count: int) -> str:
    """Template actually used for a job of ``target_count`` files.

    Batches whose template lacks ``{sequence}`` get ``_{sequence}`` appended
    so that every output name is distinct.
    """
    if target_count > 1 and SEQUENCE_TOKEN not in template:
        return f"{template}_{SEQUENCE_TOKEN}"
    return template


def resolve_batch(template: str, targets: Sequence[Path | str], timestamp: datetime | None = None) -> list[str]:
    """Resolved base names for ``targets`` in submission order."""
    ts = timestamp or datetime.now()
    pattern = effective_template(template, len(targets))
    return [
        resolve(pattern, RenderContext(original_filename=base_name(t), sequence=i, timestamp=ts))
        for i, t in enumerate(targets, start=1)
    ]
