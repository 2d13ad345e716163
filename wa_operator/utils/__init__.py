"""Utility helpers."""

from wa_operator.utils.helpers import ensure_dir, get_data_path, now_ms, utc_now

__all__ = ["ensure_dir", "get_data_path", "now_ms", "utc_now"]
