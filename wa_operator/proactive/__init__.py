"""Proactive follow-up tracking."""

from wa_operator.proactive.followups import FollowUpTracker

__all__ = ["FollowUpTracker"]
