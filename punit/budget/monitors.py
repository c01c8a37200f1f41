"""
punit.budget.monitors
=====================

Time and token budget monitors.

- `CostBudgetMonitor`: METHOD scope. Owned by a single test invocation and
  driven from one thread, so it carries no locking.
- `SharedBudgetMonitor`: CLASS and SUITE scope. Shared by every invocation
  running under that scope, possibly from several threads at once; token
  accumulation is serialized by a lock while threshold checks read a
  plain integer snapshot.

A budget of 0 (or less) means unlimited. Time checks use ``elapsed >= budget``;
token checks differ by charging mode (see `CostBudgetMonitor`).

Examples
--------
>>> from punit.budget.monitors import CostBudgetMonitor
>>> from punit.core.names import TokenMode
>>> m = CostBudgetMonitor(token_budget=500, static_token_charge=100, token_mode=TokenMode.STATIC)
>>> for _ in range(5):
...     m.record_static_token_charge()
>>> m.tokens_consumed
500
>>> m.check_token_budget_before_sample().name
'METHOD_TOKEN_BUDGET_EXHAUSTED'
"""

from __future__ import annotations
import threading
import time
from typing import Callable, Optional

from punit.core.names import (
    BudgetExhaustedBehavior,
    BudgetScope,
    TerminationReason,
    TokenMode,
)

Clock = Callable[[], float]


def _elapsed_ms(clock: Clock, started: float) -> int:
    return round((clock() - started) * 1000)


class CostBudgetMonitor:
    """Method-scope monitor.

    Token charging modes:

    - STATIC: every sample costs `static_token_charge`; the budget is checked
      *before* a sample (``consumed + charge > budget`` stops the run).
    - DYNAMIC: the sample reports its actual usage; the budget is checked
      *after* a sample (``consumed > budget`` stops the run).
    - NONE: tokens are not tracked.
    """

    def __init__(
        self,
        *,
        time_budget_ms: int = 0,
        token_budget: int = 0,
        static_token_charge: int = 0,
        token_mode: TokenMode = TokenMode.NONE,
        on_budget_exhausted: BudgetExhaustedBehavior = BudgetExhaustedBehavior.FAIL,
        clock: Clock = time.monotonic,
    ) -> None:
        self.time_budget_ms = time_budget_ms
        self.token_budget = token_budget
        self.static_token_charge = static_token_charge
        self.token_mode = token_mode
        self.on_budget_exhausted = on_budget_exhausted
        self._clock = clock
        self._started = clock()
        self.tokens_consumed = 0

    @property
    def scope(self) -> BudgetScope:
        return BudgetScope.METHOD

    @property
    def elapsed_ms(self) -> int:
        return _elapsed_ms(self._clock, self._started)

    def has_time_budget(self) -> bool:
        return self.time_budget_ms > 0

    def has_token_budget(self) -> bool:
        return self.token_budget > 0

    def check_time_budget(self) -> Optional[TerminationReason]:
        if self.has_time_budget() and self.elapsed_ms >= self.time_budget_ms:
            return TerminationReason.METHOD_TIME_BUDGET_EXHAUSTED
        return None

    def check_token_budget_before_sample(self) -> Optional[TerminationReason]:
        """STATIC mode: would the next sample's charge overrun the budget?"""
        if self.token_mode is not TokenMode.STATIC or not self.has_token_budget():
            return None
        if self.tokens_consumed + self.static_token_charge > self.token_budget:
            return TerminationReason.METHOD_TOKEN_BUDGET_EXHAUSTED
        return None

    def record_static_token_charge(self) -> None:
        if self.token_mode is TokenMode.STATIC:
            self.tokens_consumed += self.static_token_charge

    def record_dynamic_tokens(self, tokens: int) -> None:
        if self.token_mode is TokenMode.DYNAMIC:
            self.tokens_consumed += tokens

    def check_token_budget_after_sample(self) -> Optional[TerminationReason]:
        """DYNAMIC mode: has recorded usage already overrun the budget?"""
        if self.token_mode is not TokenMode.DYNAMIC or not self.has_token_budget():
            return None
        if self.tokens_consumed > self.token_budget:
            return TerminationReason.METHOD_TOKEN_BUDGET_EXHAUSTED
        return None

    def remaining_token_budget(self) -> Optional[int]:
        """Tokens left, or None when unlimited."""
        if not self.has_token_budget():
            return None
        return max(0, self.token_budget - self.tokens_consumed)

    def remaining_time_ms(self) -> Optional[int]:
        """Milliseconds left, or None when unlimited."""
        if not self.has_time_budget():
            return None
        return max(0, self.time_budget_ms - self.elapsed_ms)


class SharedBudgetMonitor:
    """Class- or suite-scope monitor shared across concurrent invocations."""

    def __init__(
        self,
        scope: BudgetScope,
        *,
        time_budget_ms: int = 0,
        token_budget: int = 0,
        on_budget_exhausted: BudgetExhaustedBehavior = BudgetExhaustedBehavior.FAIL,
        clock: Clock = time.monotonic,
    ) -> None:
        if scope not in (BudgetScope.CLASS, BudgetScope.SUITE):
            raise ValueError("SharedBudgetMonitor covers CLASS or SUITE scope only")
        self.scope = scope
        self.time_budget_ms = time_budget_ms
        self.token_budget = token_budget
        self.on_budget_exhausted = on_budget_exhausted
        self._clock = clock
        self._started = clock()
        self._tokens = 0
        self._lock = threading.Lock()

    @property
    def elapsed_ms(self) -> int:
        return _elapsed_ms(self._clock, self._started)

    @property
    def tokens_consumed(self) -> int:
        return self._tokens

    def add_tokens(self, tokens: int) -> int:
        """Atomically add tokens; returns the new total."""
        with self._lock:
            self._tokens += tokens
            return self._tokens

    def has_time_budget(self) -> bool:
        return self.time_budget_ms > 0

    def has_token_budget(self) -> bool:
        return self.token_budget > 0

    def has_budget(self) -> bool:
        return self.has_time_budget() or self.has_token_budget()

    def check_time_budget(self) -> Optional[TerminationReason]:
        if self.has_time_budget() and self.elapsed_ms >= self.time_budget_ms:
            return TerminationReason.time_exhausted(self.scope)
        return None

    def check_token_budget(self) -> Optional[TerminationReason]:
        if self.has_token_budget() and self._tokens > self.token_budget:
            return TerminationReason.token_exhausted(self.scope)
        return None

    def remaining_token_budget(self) -> Optional[int]:
        if not self.has_token_budget():
            return None
        return max(0, self.token_budget - self._tokens)

    def remaining_time_ms(self) -> Optional[int]:
        if not self.has_time_budget():
            return None
        return max(0, self.time_budget_ms - self.elapsed_ms)
