"""
punit.budget.suite
==================

Lifecycle of the suite-scope budget monitor.

The suite monitor is process-wide: it is built lazily from
`SuiteBudgetSettings` the first time any test asks for it, and discarded with
`reset()`. When neither a time nor a token budget is configured there is no
suite monitor at all.

Examples
--------
>>> from punit.budget import suite
>>> suite.reset()
>>> m = suite.initialize({"punit.suite.tokenBudget": "1000"})
>>> m.scope.name, m.token_budget
('SUITE', 1000)
>>> suite.get_monitor() is m
True
>>> suite.reset()
"""

from __future__ import annotations
import threading
from typing import Any, Mapping, Optional

import structlog

from punit.budget.monitors import SharedBudgetMonitor
from punit.core.config import SuiteBudgetSettings
from punit.core.names import BudgetScope

logger = structlog.get_logger()

_UNSET = object()
_monitor: Any = _UNSET
_lock = threading.Lock()


def _build(settings: SuiteBudgetSettings) -> Optional[SharedBudgetMonitor]:
    if not settings.has_budget():
        return None
    logger.info(
        "suite_budget_configured",
        time_budget_ms=settings.time_budget_ms,
        token_budget=settings.token_budget,
        on_budget_exhausted=settings.on_budget_exhausted.value,
    )
    return SharedBudgetMonitor(
        BudgetScope.SUITE,
        time_budget_ms=settings.time_budget_ms,
        token_budget=settings.token_budget,
        on_budget_exhausted=settings.on_budget_exhausted,
    )


def initialize(
    properties: Optional[Mapping[str, Any]] = None,
) -> Optional[SharedBudgetMonitor]:
    """(Re)build the suite monitor; properties outrank the environment."""
    global _monitor
    settings = SuiteBudgetSettings.from_properties(properties)
    with _lock:
        _monitor = _build(settings)
        return _monitor


def get_monitor() -> Optional[SharedBudgetMonitor]:
    """Return the suite monitor, building it from the environment on first use."""
    global _monitor
    with _lock:
        if _monitor is _UNSET:
            _monitor = _build(SuiteBudgetSettings.from_properties())
        return _monitor


def reset() -> None:
    """Forget the suite monitor; the next `get_monitor` rebuilds it."""
    global _monitor
    with _lock:
        _monitor = _UNSET
