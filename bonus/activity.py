"""
Activity predicates for subscriptions.

Two questions are asked about a subscription and they deliberately use
different windows:

* ``is_expired`` answers "has the paid period run out?" and is a strict
  comparison against ``active_until``. It drives token redaction and the
  ``isExpired`` flag shown to the owner.
* ``is_actively_paying`` answers "does this subscription still count for
  referral bonuses and net-cost figures?" and keeps counting for a grace
  window (30 days by default) after ``active_until``.

Both are pure functions of ``(is_active, active_until, now)``. Only
``is_actively_paying`` looks at ``is_active``.
"""
from datetime import datetime, timedelta
from typing import Optional

DEFAULT_GRACE_DAYS = 30


def is_expired(is_active: bool, active_until: Optional[datetime], now: datetime) -> bool:
    """
    True once ``active_until`` lies strictly in the past.

    ``is_active`` is not consulted. A cancelled subscription still reads as
    expired once its period is over.
    """
    if active_until is None:
        return False
    return active_until < now


def is_actively_paying(
    is_active: bool,
    active_until: Optional[datetime],
    now: datetime,
    grace_days: int = DEFAULT_GRACE_DAYS,
) -> bool:
    """True while active and ``active_until`` is no older than ``grace_days``."""
    if not is_active or active_until is None:
        return False
    return active_until >= now - timedelta(days=grace_days)
