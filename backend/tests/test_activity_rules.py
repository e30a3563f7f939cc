from types import SimpleNamespace

import pytest

from studentadmin.exceptions import (
    DuplicateActivityError,
    DuplicateActivityNameAndSuffixError,
    DuplicateActivityNameError,
)
from studentadmin.utils.activity_rules import find_duplicate, normalize_name, type_suffix


def _activity(id, name, activity_type):
    return SimpleNamespace(id=id, name=name, activity_type=activity_type)


EXISTING = [
    _activity(1, "Chess Club", "Indoor Activity"),
    _activity(2, "Football", "Outdoor Sport"),
]


def test_normalize_name_trims_and_lowercases():
    assert normalize_name("  Chess Club ") == "chess club"


def test_type_suffix_is_last_word():
    assert type_suffix("Indoor Activity") == "activity"
    assert type_suffix("  outdoor   SPORT  ") == "sport"
    assert type_suffix("Music") == "music"
    assert type_suffix("   ") == ""


def test_case_and_whitespace_variant_is_duplicate():
    with pytest.raises(DuplicateActivityError):
        find_duplicate("chess club ", "Board Game", EXISTING)


def test_same_name_different_suffix_raises_name_error():
    with pytest.raises(DuplicateActivityNameError):
        find_duplicate("CHESS CLUB", "Board Game", EXISTING)


def test_same_name_and_suffix_raises_specific_error():
    with pytest.raises(DuplicateActivityNameAndSuffixError) as info:
        find_duplicate("chess club", "Outdoor activity", EXISTING)
    assert info.value.suffix == "activity"


def test_matching_suffix_alone_is_allowed():
    find_duplicate("Drama", "Indoor Activity", EXISTING)


def test_update_skips_the_record_itself():
    find_duplicate("Chess Club", "Indoor Activity", EXISTING, exclude_id=1)


def test_update_still_collides_with_other_records():
    with pytest.raises(DuplicateActivityNameError):
        find_duplicate("football", "Indoor Activity", EXISTING, exclude_id=1)


def test_no_existing_records():
    find_duplicate("Chess Club", "Indoor Activity", [])
