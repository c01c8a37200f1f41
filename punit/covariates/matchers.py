"""
punit.covariates.matchers
=========================

Per-covariate conformance strategies.

A matcher compares the value recorded in a baseline with the value resolved
for the current run and answers CONFORMS, PARTIALLY_CONFORMS or
DOES_NOT_CONFORM. The ``UNDEFINED`` value never conforms, not even to itself.

Examples
--------
>>> from punit.covariates.matchers import ExactStringMatcher, TimeOfDayMatcher, MatchResult
>>> from punit.covariates.model import StringValue, TimeWindowValue
>>> ExactStringMatcher().match(StringValue("gpt-4"), StringValue("gpt-4")).name
'CONFORMS'
>>> ExactStringMatcher().match(StringValue("UNDEFINED"), StringValue("UNDEFINED")).name
'DOES_NOT_CONFORM'
>>> office = TimeWindowValue.parse("09:00-17:00 UTC")
>>> TimeOfDayMatcher().match(office, TimeWindowValue.parse("08:45-08:45 UTC")).name
'CONFORMS'
>>> TimeOfDayMatcher().match(office, TimeWindowValue.parse("16:00-19:00 UTC")).name
'PARTIALLY_CONFORMS'
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional

from punit.covariates.model import (
    CovariateValue,
    StandardCovariate,
    TimeWindowValue,
)

MINUTES_PER_DAY = 24 * 60


class MatchResult(Enum):
    """Conformance of a test value to a baseline value, best first."""

    CONFORMS = 0
    PARTIALLY_CONFORMS = 1
    DOES_NOT_CONFORM = 2

    @property
    def rank(self) -> int:
        return self.value


class CovariateMatcher(ABC):
    @abstractmethod
    def match(self, baseline: CovariateValue, test: CovariateValue) -> MatchResult:
        """Compare a baseline's recorded value with the current run's value."""


class ExactStringMatcher(CovariateMatcher):
    """Canonical strings must be equal (optionally ignoring case)."""

    def __init__(self, case_sensitive: bool = True) -> None:
        self.case_sensitive = case_sensitive

    def match(self, baseline: CovariateValue, test: CovariateValue) -> MatchResult:
        if baseline.is_undefined() or test.is_undefined():
            return MatchResult.DOES_NOT_CONFORM
        left, right = baseline.canonical(), test.canonical()
        if not self.case_sensitive:
            left, right = left.casefold(), right.casefold()
        return MatchResult.CONFORMS if left == right else MatchResult.DOES_NOT_CONFORM


class WeekdayVsWeekendMatcher(ExactStringMatcher):
    """Two-valued label (``Mo-Fr`` / ``Sa-So``); equal labels conform."""


class TimeOfDayMatcher(CovariateMatcher):
    """Containment test of the run's time window in the baseline's window.

    The baseline window is widened by `LENIENCY_MINUTES` on both sides and
    treated as an arc on the 24-hour clock, so windows such as
    ``22:00-06:00`` wrap past midnight.

    - CONFORMS: the run's window (or point in time) lies inside the widened
      baseline window.
    - PARTIALLY_CONFORMS: the run's window overlaps it without lying inside.
    - DOES_NOT_CONFORM: no overlap, a baseline that is not a time window,
      an undefined value, or differing timezones.
    """

    LENIENCY_MINUTES = 30

    def match(self, baseline: CovariateValue, test: CovariateValue) -> MatchResult:
        if not isinstance(baseline, TimeWindowValue):
            return MatchResult.DOES_NOT_CONFORM
        window = _as_time_window(test)
        if window is None or window.timezone != baseline.timezone:
            return MatchResult.DOES_NOT_CONFORM

        base_start = (baseline.start_minute - self.LENIENCY_MINUTES) % MINUTES_PER_DAY
        base_length = _arc_length(baseline) + 2 * self.LENIENCY_MINUTES
        if base_length >= MINUTES_PER_DAY:
            return MatchResult.CONFORMS

        test_start = window.start_minute
        test_length = _arc_length(window)
        offset = (test_start - base_start) % MINUTES_PER_DAY
        if offset + test_length <= base_length:
            return MatchResult.CONFORMS
        starts_inside = offset <= base_length
        covers_start = (base_start - test_start) % MINUTES_PER_DAY <= test_length
        if starts_inside or covers_start:
            return MatchResult.PARTIALLY_CONFORMS
        return MatchResult.DOES_NOT_CONFORM


def _arc_length(window: TimeWindowValue) -> int:
    return (window.end_minute - window.start_minute) % MINUTES_PER_DAY


def _as_time_window(value: CovariateValue) -> Optional[TimeWindowValue]:
    if isinstance(value, TimeWindowValue):
        return value
    if value.is_undefined():
        return None
    try:
        return TimeWindowValue.parse(value.canonical())
    except ValueError:
        return None


class CovariateMatcherRegistry:
    """Matcher lookup by covariate key, with exact-string matching as fallback."""

    def __init__(self, default: Optional[CovariateMatcher] = None) -> None:
        self._matchers: Dict[str, CovariateMatcher] = {}
        self._default = default or ExactStringMatcher()

    @classmethod
    def with_standard_matchers(cls) -> "CovariateMatcherRegistry":
        registry = cls()
        registry.register(
            StandardCovariate.WEEKDAY_VERSUS_WEEKEND.key, WeekdayVsWeekendMatcher()
        )
        registry.register(StandardCovariate.TIME_OF_DAY.key, TimeOfDayMatcher())
        registry.register(StandardCovariate.TIMEZONE.key, ExactStringMatcher())
        registry.register(
            StandardCovariate.REGION.key, ExactStringMatcher(case_sensitive=False)
        )
        return registry

    def register(self, key: str, matcher: CovariateMatcher) -> None:
        self._matchers[key] = matcher

    def get_matcher(self, key: str) -> CovariateMatcher:
        return self._matchers.get(key, self._default)

    def match(
        self, key: str, baseline: CovariateValue, test: CovariateValue
    ) -> MatchResult:
        return self.get_matcher(key).match(baseline, test)
