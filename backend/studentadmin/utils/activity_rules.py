"""Duplicate detection rules for activities.

Two activities collide when their names match after trimming and
lowercasing. A second, more specific rule also compares the type
*suffix*, the last whitespace-delimited word of the activity type
("Indoor Activity" -> "activity"). A suffix match on its own is not a
collision.

The check is a full scan of the existing activities, O(n) per write. It
only gives the caller a precise error early; the UNIQUE constraint on
`activity.name_key` is what actually prevents duplicates when two writes
race past the scan.
"""

from typing import Iterable, Optional

from ..exceptions import DuplicateActivityNameAndSuffixError, DuplicateActivityNameError


def normalize_name(name: str) -> str:
    """Return the comparison key for an activity name."""
    return (name or "").strip().lower()


def type_suffix(activity_type: str) -> str:
    """Return the last word of a trimmed, lowercased activity type.

    >>> type_suffix("  Indoor Activity ")
    'activity'
    """
    parts = (activity_type or "").strip().lower().split()
    return parts[-1] if parts else ""


def find_duplicate(name: str, activity_type: str, existing: Iterable, exclude_id: Optional[int] = None) -> None:
    """Raise if `name`/`activity_type` collides with any of `existing`.

    `existing` is any iterable of objects exposing `id`, `name` and
    `activity_type`. The record with id `exclude_id` (the one being
    updated) is skipped.

    The name-and-suffix rule is evaluated first: every name-and-suffix
    match is also a name match, so checking names first would make the
    specific error unreachable.
    """
    key = normalize_name(name)
    suffix = type_suffix(activity_type)
    for other in existing:
        if exclude_id is not None and other.id == exclude_id:
            continue
        if normalize_name(other.name) != key:
            continue
        if type_suffix(other.activity_type) == suffix:
            raise DuplicateActivityNameAndSuffixError(name, suffix)
        raise DuplicateActivityNameError(name)
