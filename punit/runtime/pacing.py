"""
punit.runtime.pacing
====================

Rate limiting between the samples of one probabilistic test.

A test may cap the rate at which it calls the system under test: requests
per second, per minute or per hour, and an explicit minimum delay per
sample. Every constraint implies a minimum gap between two samples; the
largest one wins. The gap is slept before every sample except the first.

Each constraint can be overridden without code changes through host
properties (``punit.pacing.maxRps``) or the environment
(``PUNIT_PACING_MAX_RPS``), which outrank the value declared on the test.

Examples
--------
>>> from punit.runtime.pacing import Pacing
>>> Pacing(max_requests_per_minute=60).effective_delay_ms
1000
>>> Pacing(max_requests_per_second=4, min_ms_per_sample=100).effective_delay_ms
250
>>> Pacing(max_requests_per_minute=60).estimated_duration_ms(30)
30000
"""

from __future__ import annotations
import math
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional

import structlog

from punit.core.config import PacingSettings
from punit.core.errors import ConfigurationError

logger = structlog.get_logger()

_MS_PER_SECOND = 1_000.0
_MS_PER_MINUTE = 60_000.0
_MS_PER_HOUR = 3_600_000.0


@dataclass(frozen=True)
class Pacing:
    """Pacing constraints of one test; 0 leaves a constraint unset."""

    max_requests_per_second: float = 0.0
    max_requests_per_minute: float = 0.0
    max_requests_per_hour: float = 0.0
    min_ms_per_sample: int = 0

    def __post_init__(self) -> None:
        for name in (
            "max_requests_per_second",
            "max_requests_per_minute",
            "max_requests_per_hour",
            "min_ms_per_sample",
        ):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"{name} must be >= 0, but was: {value}")

    @property
    def has_pacing(self) -> bool:
        return self.effective_delay_ms > 0

    @property
    def effective_delay_ms(self) -> int:
        """Minimum gap between two samples, from the most restrictive constraint."""
        delay = self.min_ms_per_sample
        for limit, window_ms in (
            (self.max_requests_per_second, _MS_PER_SECOND),
            (self.max_requests_per_minute, _MS_PER_MINUTE),
            (self.max_requests_per_hour, _MS_PER_HOUR),
        ):
            if limit > 0:
                delay = max(delay, math.ceil(window_ms / limit))
        return delay

    @property
    def effective_rps(self) -> Optional[float]:
        """Sustained request rate, or None when unpaced."""
        delay = self.effective_delay_ms
        if delay <= 0:
            return None
        rps = _MS_PER_SECOND / delay
        for limit, per_second in (
            (self.max_requests_per_second, 1.0),
            (self.max_requests_per_minute, 60.0),
            (self.max_requests_per_hour, 3600.0),
        ):
            if limit > 0:
                rps = min(rps, limit / per_second)
        return rps

    def estimated_duration_ms(self, samples: int) -> int:
        """Lower bound on the wall-clock time pacing alone imposes; 0 when unpaced."""
        rps = self.effective_rps
        if samples <= 0 or rps is None:
            return 0
        return int(samples / rps * _MS_PER_SECOND)

    def with_overrides(self, settings: PacingSettings) -> "Pacing":
        overrides = {
            name: value
            for name, value in (
                ("max_requests_per_second", settings.max_rps),
                ("max_requests_per_minute", settings.max_rpm),
                ("max_requests_per_hour", settings.max_rph),
                ("min_ms_per_sample", settings.min_ms_per_sample),
            )
            if value is not None
        }
        return replace(self, **overrides) if overrides else self


def resolve_pacing(
    declared: Optional[Pacing] = None,
    properties: Optional[Mapping[str, Any]] = None,
) -> Pacing:
    """Apply property and environment overrides to the declared pacing.

    Raises:
        ConfigurationError: a resolved constraint is negative
    """
    return (declared or Pacing()).with_overrides(PacingSettings.from_properties(properties))


def check_feasibility(pacing: Pacing, samples: int, time_budget_ms: int) -> bool:
    """Warn when pacing alone would outlast the method time budget."""
    if not pacing.has_pacing or time_budget_ms <= 0:
        return True
    estimated = pacing.estimated_duration_ms(samples)
    if estimated <= time_budget_ms:
        return True
    per_sample = estimated // samples
    logger.warning(
        "pacing_exceeds_time_budget",
        samples=samples,
        estimated_duration_ms=estimated,
        time_budget_ms=time_budget_ms,
        max_samples_in_budget=time_budget_ms // per_sample if per_sample > 0 else samples,
    )
    return False


class Pacer:
    """Sleeps the effective delay before every sample but the first."""

    def __init__(self, pacing: Pacing, sleep: Callable[[float], None] = time.sleep) -> None:
        self.delay_ms = pacing.effective_delay_ms
        self._sleep = sleep
        self._dispatched = 0

    def before_sample(self) -> int:
        """Wait as pacing requires; returns the milliseconds slept."""
        self._dispatched += 1
        if self._dispatched <= 1 or self.delay_ms <= 0:
            return 0
        self._sleep(self.delay_ms / _MS_PER_SECOND)
        return self.delay_ms
