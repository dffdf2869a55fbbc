"""Cron next-occurrence evaluation.

Pure functions over ``croniter``. All computation happens in UTC: naive
datetimes are read as UTC, aware ones are converted. Supported layouts:

* 5 fields: ``minute hour day-of-month month day-of-week``
* 6 fields: ``second minute hour day-of-month month day-of-week``
* 7 fields: the 6-field layout followed by a ``year`` field

An expression that yields no occurrence within ``HORIZON_YEARS`` of the
reference instant is malformed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from croniter import croniter  # type: ignore[import-untyped]
from croniter import CroniterBadCronError, CroniterBadDateError  # type: ignore[import-untyped]

from schedwf.errors import MalformedExpressionError

HORIZON_YEARS = 10
MIN_YEAR = 1970
MAX_YEAR = 2099

_DAY_FIELDS_5 = (2, 4)


@dataclass(frozen=True)
class _ParsedExpression:
    """An expression rewritten into croniter's field order plus a year filter."""

    croniter_expr: str
    years: frozenset[int] | None


def to_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_years(field: str, expression: str) -> frozenset[int]:
    years: set[int] = set()
    for token in field.split(","):
        token = token.strip()
        if not token:
            raise MalformedExpressionError(expression, "empty year token")
        base, _, step_raw = token.partition("/")
        try:
            step = int(step_raw) if step_raw else 1
        except ValueError as exc:
            raise MalformedExpressionError(expression, f"invalid year step '{step_raw}'") from exc
        if step < 1:
            raise MalformedExpressionError(expression, "year step must be positive")
        try:
            if base == "*":
                start, end = MIN_YEAR, MAX_YEAR
            elif "-" in base:
                low, high = base.split("-", 1)
                start, end = int(low), int(high)
            else:
                start = int(base)
                end = MAX_YEAR if step_raw else start
        except ValueError as exc:
            raise MalformedExpressionError(expression, f"invalid year '{base}'") from exc
        if not (MIN_YEAR <= start <= end <= MAX_YEAR):
            raise MalformedExpressionError(expression, f"year out of range '{token}'")
        years.update(range(start, end + 1, step))
    return frozenset(years)


@lru_cache(maxsize=1024)
def _parse(expression: str) -> _ParsedExpression:
    if not isinstance(expression, str) or not expression.strip():
        raise MalformedExpressionError(str(expression), "expression is empty")
    fields = expression.split()
    years: frozenset[int] | None = None
    if len(fields) == 7:
        years = _parse_years(fields[6], expression)
        fields = fields[:6]
    if len(fields) == 6:
        # croniter expects seconds as the trailing field.
        fields = fields[1:] + fields[:1]
    elif len(fields) != 5:
        raise MalformedExpressionError(expression, f"expected 5, 6 or 7 fields, got {len(fields)}")
    for index in _DAY_FIELDS_5:
        if fields[index] == "?":
            fields[index] = "*"
    rewritten = " ".join(fields)
    if not croniter.is_valid(rewritten):
        raise MalformedExpressionError(expression, "invalid field value")
    return _ParsedExpression(croniter_expr=rewritten, years=years)


def _first_year_at_or_after(years: frozenset[int], year: int) -> int | None:
    candidates = [y for y in years if y >= year]
    return min(candidates) if candidates else None


def next_occurrence(expression: str, after: datetime) -> datetime:
    """Return the first occurrence of *expression* strictly after *after* (UTC).

    Raises:
        MalformedExpressionError: unparsable expression, or no occurrence
            within ``HORIZON_YEARS``.
    """
    parsed = _parse(expression)
    reference = to_utc(after)
    horizon = reference + timedelta(days=366 * HORIZON_YEARS)
    start = reference
    try:
        while True:
            it = croniter(parsed.croniter_expr, start, max_years_between_matches=HORIZON_YEARS)
            candidate = to_utc(it.get_next(datetime))
            while candidate <= reference:
                candidate = to_utc(it.get_next(datetime))
            if candidate > horizon:
                break
            if parsed.years is None or candidate.year in parsed.years:
                return candidate
            year = _first_year_at_or_after(parsed.years, candidate.year + 1)
            if year is None:
                break
            start = datetime(year, 1, 1, tzinfo=timezone.utc) - timedelta(seconds=1)
    except (CroniterBadCronError, CroniterBadDateError, ValueError, KeyError) as exc:
        raise MalformedExpressionError(expression, str(exc) or "no matching date") from exc
    raise MalformedExpressionError(expression, f"no occurrence within {HORIZON_YEARS} years")


def upcoming(expression: str, after: datetime, count: int = 5) -> list[datetime]:
    """Return the next *count* occurrences after *after*."""
    out: list[datetime] = []
    cursor = after
    for _ in range(max(0, int(count))):
        cursor = next_occurrence(expression, cursor)
        out.append(cursor)
    return out


def validate_expression(expression: str, now: datetime | None = None) -> bool:
    """Return True when *expression* parses and fires within the horizon."""
    try:
        next_occurrence(expression, now or datetime.now(timezone.utc))
    except MalformedExpressionError:
        return False
    return True
