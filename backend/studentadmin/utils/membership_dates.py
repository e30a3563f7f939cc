"""Membership start/expiry computation.

A membership starts on the day it is created and runs for a fixed
number of calendar months that depends on its type. Month arithmetic
clamps the day to the length of the target month, so a membership
started on 31 January expires on the last day of April, not in May.
"""

import calendar
from datetime import date, datetime
from typing import Optional, Tuple

from ..exceptions import InvalidMembershipTypeError

MEMBERSHIP_TERMS = {
    "standard": 3,
    "premium": 6,
    "platinum": 12,
}


def add_months(start: date, months: int) -> date:
    """Add calendar months to `start`, clamping to the end of the month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def normalize_membership_type(membership_type: str) -> str:
    """Return the canonical label (e.g. ``"Premium"``) or raise."""
    key = membership_type.strip().lower() if isinstance(membership_type, str) else ""
    if key not in MEMBERSHIP_TERMS:
        raise InvalidMembershipTypeError(membership_type)
    return key.capitalize()


def compute_membership_dates(membership_type: str, today: Optional[date] = None) -> Tuple[str, date, date]:
    """Return ``(label, start_date, expiry_date)`` for a new membership.

    `today` defaults to the server's current date; any time of day is
    discarded.
    """
    label = normalize_membership_type(membership_type)
    start = today or date.today()
    if isinstance(start, datetime):
        start = start.date()
    return label, start, add_months(start, MEMBERSHIP_TERMS[label.lower()])
