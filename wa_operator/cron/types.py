"""Periodic job types."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

JobCallback = Callable[[], Awaitable[Any] | Any]


@dataclass
class PeriodicJob:
    """A callback run every `interval_s` seconds."""
    name: str
    interval_s: float
    callback: JobCallback
    enabled: bool = True
    runs: int = 0
    failures: int = 0
    last_error: str = ""
