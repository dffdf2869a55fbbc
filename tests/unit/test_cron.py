"""Unit and property tests for cron next-occurrence evaluation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from schedwf.cron import next_occurrence, to_utc, upcoming, validate_expression
from schedwf.errors import InvalidArgumentError, MalformedExpressionError

UTC = timezone.utc


def test_daily_expression_from_midnight() -> None:
    after = datetime(2025, 1, 1, 0, 0, tzinfo=UTC)
    assert next_occurrence("0 9 * * *", after) == datetime(2025, 1, 1, 9, 0, tzinfo=UTC)


def test_result_is_strictly_after_reference() -> None:
    at_nine = datetime(2025, 1, 1, 9, 0, tzinfo=UTC)
    assert next_occurrence("0 9 * * *", at_nine) == datetime(2025, 1, 2, 9, 0, tzinfo=UTC)


def test_naive_reference_is_read_as_utc() -> None:
    naive = datetime(2025, 1, 1, 0, 0)
    assert next_occurrence("0 9 * * *", naive) == datetime(2025, 1, 1, 9, 0, tzinfo=UTC)


def test_aware_reference_is_converted_to_utc() -> None:
    plus_two = timezone(timedelta(hours=2))
    after = datetime(2025, 1, 1, 10, 30, tzinfo=plus_two)  # 08:30 UTC
    assert next_occurrence("0 9 * * *", after) == datetime(2025, 1, 1, 9, 0, tzinfo=UTC)


def test_six_field_expression_has_leading_seconds() -> None:
    after = datetime(2025, 1, 1, 9, 0, 0, tzinfo=UTC)
    assert next_occurrence("30 0 9 * * *", after) == datetime(2025, 1, 1, 9, 0, 30, tzinfo=UTC)
    assert next_occurrence("*/15 * * * * *", after) == datetime(2025, 1, 1, 9, 0, 15, tzinfo=UTC)


def test_question_mark_in_day_field_is_wildcard() -> None:
    # 2025-01-01 is a Wednesday.
    after = datetime(2025, 1, 1, 0, 0, tzinfo=UTC)
    assert next_occurrence("0 0 9 ? * MON", after) == datetime(2025, 1, 6, 9, 0, tzinfo=UTC)


def test_seven_field_expression_filters_years() -> None:
    after = datetime(2025, 6, 1, tzinfo=UTC)
    assert next_occurrence("0 0 12 1 1 * 2027", after) == datetime(2027, 1, 1, 12, 0, tzinfo=UTC)
    assert next_occurrence("0 0 12 1 1 * 2026-2030/2", after) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def test_ranges_lists_and_steps() -> None:
    after = datetime(2025, 1, 1, 0, 0, tzinfo=UTC)
    assert next_occurrence("15,45 8-10 * * *", after) == datetime(2025, 1, 1, 8, 15, tzinfo=UTC)
    assert next_occurrence("*/20 * * * *", datetime(2025, 1, 1, 0, 1, tzinfo=UTC)) == datetime(
        2025, 1, 1, 0, 20, tzinfo=UTC
    )


@pytest.mark.parametrize(
    "expression",
    ["", "   ", "not a cron", "61 * * * *", "* * * *", "0 0 0 0 0 0 0 0", "0 0 12 1 1 * 1800"],
)
def test_malformed_expressions_raise(expression: str) -> None:
    with pytest.raises(MalformedExpressionError):
        next_occurrence(expression, datetime(2025, 1, 1, tzinfo=UTC))


def test_malformed_expression_is_invalid_argument() -> None:
    with pytest.raises(InvalidArgumentError):
        next_occurrence("bogus", datetime(2025, 1, 1, tzinfo=UTC))


def test_expression_outside_horizon_is_malformed() -> None:
    with pytest.raises(MalformedExpressionError):
        next_occurrence("0 0 0 1 1 * 2099", datetime(2025, 1, 1, tzinfo=UTC))


def test_expression_only_in_past_years_is_malformed() -> None:
    with pytest.raises(MalformedExpressionError):
        next_occurrence("0 0 0 1 1 * 2020", datetime(2025, 1, 1, tzinfo=UTC))


def test_impossible_date_is_malformed() -> None:
    with pytest.raises(MalformedExpressionError):
        next_occurrence("0 0 31 2 *", datetime(2025, 1, 1, tzinfo=UTC))


def test_upcoming_returns_consecutive_occurrences() -> None:
    after = datetime(2025, 1, 1, 0, 0, tzinfo=UTC)
    assert upcoming("0 9 * * *", after, count=3) == [
        datetime(2025, 1, 1, 9, tzinfo=UTC),
        datetime(2025, 1, 2, 9, tzinfo=UTC),
        datetime(2025, 1, 3, 9, tzinfo=UTC),
    ]


def test_validate_expression() -> None:
    assert validate_expression("0 9 * * *") is True
    assert validate_expression("0 9 * *") is False


def test_to_utc_keeps_instant() -> None:
    local = datetime(2025, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert to_utc(local) == datetime(2025, 1, 1, 17, 0, tzinfo=UTC)
    assert to_utc(local).tzinfo == UTC


_EXPRESSIONS = st.sampled_from(
    [
        "* * * * *",
        "0 9 * * *",
        "*/5 * * * *",
        "0 0 1 * *",
        "30 2 * * 1-5",
        "0 0 9 * * *",
        "*/10 * * * * *",
        "0 0 0 29 2 *",
    ]
)


@settings(max_examples=60, deadline=None)
@given(
    expression=_EXPRESSIONS,
    after=st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2080, 1, 1)),
)
def test_property_next_occurrence_is_strictly_after(expression: str, after: datetime) -> None:
    """Property: valid expressions always yield a UTC instant strictly after the reference."""
    result = next_occurrence(expression, after)
    assert result.tzinfo == UTC
    assert result > after.replace(tzinfo=UTC)
    assert next_occurrence(expression, result) > result
