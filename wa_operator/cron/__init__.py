"""Periodic maintenance jobs."""

from wa_operator.cron.service import CronService
from wa_operator.cron.types import PeriodicJob

__all__ = ["CronService", "PeriodicJob"]
