"""
punit.budget.accumulator
========================

Process-wide cost accounting across every probabilistic test in a run.

The accumulator is created once per process (`get_or_create`), fed from many
test threads, and closed at the end of the run, at which point it logs a
summary. `reset` discards it for test isolation.

The optional global time and token budgets trip on ``elapsed >= budget`` and
``tokens >= budget``. `BudgetOrchestrator` checks them before every other
scope, and `on_budget_exhausted` decides what happens to the verdict.

Examples
--------
>>> from punit.budget.accumulator import format_duration
>>> format_duration(450), format_duration(61_000), format_duration(3_725_000)
('450ms', '1m 1s', '1h 2m 5s')
"""

from __future__ import annotations
import threading
import time
from typing import Any, Dict, Mapping, Optional

import structlog

from punit.core.config import GlobalBudgetSettings
from punit.core.names import TerminationReason

logger = structlog.get_logger()


def format_duration(elapsed_ms: int) -> str:
    """Compact human duration: ``1h 2m 5s``, ``1m 1s``, ``5s`` or ``450ms``."""
    total_seconds = elapsed_ms // 1000
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    if seconds > 0:
        return f"{seconds}s"
    return f"{elapsed_ms}ms"


class GlobalCostAccumulator:
    """Thread-safe totals of tokens, samples and completed test methods."""

    def __init__(
        self,
        settings: Optional[GlobalBudgetSettings] = None,
        clock=time.monotonic,
    ) -> None:
        settings = settings or GlobalBudgetSettings.from_properties()
        self.time_budget_ms = settings.time_budget_ms
        self.token_budget = settings.token_budget
        self.on_budget_exhausted = settings.on_budget_exhausted
        self.emit_summary = settings.emit_summary
        self._clock = clock
        self._started = clock()
        self._lock = threading.Lock()
        self._tokens = 0
        self._samples = 0
        self._test_methods = 0

    # ---- recording (thread-safe) ----

    def record_tokens(self, tokens: int) -> None:
        with self._lock:
            self._tokens += tokens

    def record_sample_executed(self) -> None:
        with self._lock:
            self._samples += 1

    def record_test_method_completed(self) -> None:
        with self._lock:
            self._test_methods += 1

    # ---- queries ----

    @property
    def total_tokens(self) -> int:
        return self._tokens

    @property
    def tokens_consumed(self) -> int:
        return self._tokens

    @property
    def total_samples_executed(self) -> int:
        return self._samples

    @property
    def total_test_methods(self) -> int:
        return self._test_methods

    @property
    def elapsed_ms(self) -> int:
        return round((self._clock() - self._started) * 1000)

    def has_time_budget(self) -> bool:
        return self.time_budget_ms > 0

    def has_token_budget(self) -> bool:
        return self.token_budget > 0

    def is_time_budget_exhausted(self) -> bool:
        return self.has_time_budget() and self.elapsed_ms >= self.time_budget_ms

    def is_token_budget_exhausted(self) -> bool:
        return self.has_token_budget() and self.total_tokens >= self.token_budget

    def is_any_budget_exhausted(self) -> bool:
        return self.is_time_budget_exhausted() or self.is_token_budget_exhausted()

    def check_time_budget(self) -> Optional[TerminationReason]:
        if self.is_time_budget_exhausted():
            return TerminationReason.GLOBAL_TIME_BUDGET_EXHAUSTED
        return None

    def check_token_budget(self) -> Optional[TerminationReason]:
        if self.is_token_budget_exhausted():
            return TerminationReason.GLOBAL_TOKEN_BUDGET_EXHAUSTED
        return None

    def summary(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "elapsed": format_duration(self.elapsed_ms),
            "total_tokens": self.total_tokens,
            "test_methods": self.total_test_methods,
            "samples": self.total_samples_executed,
        }
        if self.has_time_budget():
            data["time_budget"] = format_duration(self.time_budget_ms)
        if self.has_token_budget():
            data["token_budget"] = self.token_budget
        return data

    def close(self) -> None:
        """Log the run summary when anything was recorded."""
        if self.emit_summary and self.total_test_methods > 0:
            logger.info("punit_run_summary", **self.summary())


_instance: Optional[GlobalCostAccumulator] = None
_instance_lock = threading.Lock()


def get_or_create(properties: Optional[Mapping[str, Any]] = None) -> GlobalCostAccumulator:
    """Return the process-wide accumulator, creating it on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = GlobalCostAccumulator(
                GlobalBudgetSettings.from_properties(properties)
            )
        return _instance


def current() -> Optional[GlobalCostAccumulator]:
    return _instance


def reset() -> None:
    """Close and discard the process-wide accumulator."""
    global _instance
    with _instance_lock:
        if _instance is not None:
            _instance.close()
        _instance = None
