"""Runtime observability helpers."""

from wa_operator.observability.metrics import MetricsStore

__all__ = ["MetricsStore"]
