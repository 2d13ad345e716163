"""Small shared helpers: data paths and clocks."""

import os
import time
from datetime import datetime, timezone
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create directory (and parents) if missing, return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Resolve the active data directory (WA_OPERATOR_DATA_DIR or ~/.wa-operator)."""
    override = (os.environ.get("WA_OPERATOR_DATA_DIR") or "").strip()
    if override:
        return ensure_dir(Path(override).expanduser())
    return ensure_dir(Path.home() / ".wa-operator")


def now_ms() -> int:
    """Wall clock in integer milliseconds."""
    return int(time.time() * 1000)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def compact_preview(text: str, limit: int = 100) -> str:
    """Collapse whitespace and clip text for log lines."""
    compact = " ".join((text or "").split())
    if len(compact) <= limit:
        return compact
    return compact[:limit] + "..."
