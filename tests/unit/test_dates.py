"""
Unit tests for calendar-date helpers.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from rentaly.exceptions import InvalidDateError
from rentaly.utils.dates import (
    clip_range,
    count_days,
    expand_dates,
    is_valid_date,
    normalize_date,
    ranges_overlap,
    validate_date_range,
)


@pytest.mark.unit
@pytest.mark.parametrize("value", ["2030-01-01", "2028-02-29"])
def test_valid_dates(value: str) -> None:
    assert is_valid_date(value)


@pytest.mark.unit
@pytest.mark.parametrize(
    "value", ["2030-02-30", "2029-02-29", "2030-1-01", "01-01-2030", "", None, 20300101]
)
def test_invalid_dates(value: object) -> None:
    assert not is_valid_date(value)


@pytest.mark.unit
def test_same_day_boundary_overlaps() -> None:
    """Test that checkout and check-in on the same day conflict."""
    assert ranges_overlap("2030-06-01", "2030-06-05", "2030-06-05", "2030-06-08")


@pytest.mark.unit
def test_adjacent_ranges_do_not_overlap() -> None:
    assert not ranges_overlap("2030-06-01", "2030-06-05", "2030-06-06", "2030-06-08")


@pytest.mark.unit
def test_contained_range_overlaps() -> None:
    assert ranges_overlap("2030-06-01", "2030-06-30", "2030-06-10", "2030-06-11")


@pytest.mark.unit
def test_validate_date_range_rejects_reversed_range() -> None:
    with pytest.raises(InvalidDateError) as exc_info:
        validate_date_range("2030-06-05", "2030-06-01")

    assert exc_info.value.code == "invalid_date_range"


@pytest.mark.unit
def test_validate_date_range_rejects_malformed_date() -> None:
    with pytest.raises(InvalidDateError) as exc_info:
        validate_date_range("2030-06-31", "2030-07-01")

    assert exc_info.value.code == "invalid_date"
    assert exc_info.value.details == {"field": "start_date"}


@pytest.mark.unit
def test_single_day_range_is_valid() -> None:
    assert validate_date_range("2030-06-01", "2030-06-01") == ("2030-06-01", "2030-06-01")
    assert count_days("2030-06-01", "2030-06-01") == 1


@pytest.mark.unit
def test_normalize_date_uses_business_timezone() -> None:
    """Test that a late-evening UTC instant lands on the next local day (UTC+5:30)."""
    instant = datetime(2030, 6, 1, 20, 0, tzinfo=timezone.utc)

    assert normalize_date(instant) == "2030-06-02"
    assert normalize_date("2030-06-01T20:00:00Z") == "2030-06-02"


@pytest.mark.unit
def test_normalize_date_passes_through_plain_dates() -> None:
    assert normalize_date("2030-06-01") == "2030-06-01"
    assert normalize_date(date(2030, 6, 1)) == "2030-06-01"


@pytest.mark.unit
def test_normalize_date_rejects_garbage() -> None:
    with pytest.raises(InvalidDateError):
        normalize_date("next tuesday")


@pytest.mark.unit
def test_expand_dates_crosses_month_boundary() -> None:
    assert expand_dates("2030-01-30", "2030-02-02") == [
        "2030-01-30",
        "2030-01-31",
        "2030-02-01",
        "2030-02-02",
    ]


@pytest.mark.unit
def test_clip_range() -> None:
    assert clip_range("2030-06-01", "2030-06-10", "2030-06-05", None) == (
        "2030-06-05",
        "2030-06-10",
    )
    assert clip_range("2030-06-01", "2030-06-10", None, "2030-06-03") == (
        "2030-06-01",
        "2030-06-03",
    )
    assert clip_range("2030-06-01", "2030-06-10", "2030-07-01", "2030-07-05") is None
