from __future__ import annotations

import os
from pathlib import Path

def base_name(p: Path | str) -> str:
    """File name without directory or extension."""
    return Path(p).stem

def is_readable_file(p: Path) -> bool:
    return p.is_file() and os.access(p, os.R_OK)
