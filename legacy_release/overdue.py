"""Overdue evaluation for check-in cycles.

Pure functions only: identical inputs always produce identical answers, and
nothing here reads the clock on its own.
"""

from datetime import datetime

from .schemas import CheckInConfiguration, CheckInCycle, ensure_utc


def grace_deadline(cycle: CheckInCycle, config: CheckInConfiguration) -> datetime:
    """Return the instant after which ``cycle`` is considered overdue.

    Args:
        cycle: Cycle whose check-in deadline is being evaluated
        config: Owning configuration supplying the grace period

    Returns:
        The cycle deadline plus the configured grace duration, in UTC
    """
    return ensure_utc(cycle.next_checkin_at) + config.grace_delta


def is_overdue(cycle: CheckInCycle, config: CheckInConfiguration, now: datetime) -> bool:
    """Check whether the grace period of ``cycle`` has lapsed at ``now``.

    The grace deadline itself is still within the grace period; only a
    strictly later instant is overdue.
    """
    return ensure_utc(now) > grace_deadline(cycle, config)
