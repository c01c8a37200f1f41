"""
punit.budget.orchestrator
=========================

Coordination of the METHOD, CLASS, SUITE and GLOBAL budgets around a sample.

The orchestrator is built per test invocation. It holds the invocation's
method monitor and, when configured, the shared class and suite monitors, the
process-wide cost accumulator and the dynamic token recorder. Checks run
widest scope first, so the reason reported is the first exhausted scope found
in this order:

- before a sample: global time, global tokens, suite time, suite tokens,
  class time, class tokens, method time, method static-token pre-check;
- after a sample: global tokens, suite tokens, class tokens, method
  dynamic-token check.

Examples
--------
>>> from punit.budget.monitors import CostBudgetMonitor, SharedBudgetMonitor
>>> from punit.budget.orchestrator import BudgetOrchestrator
>>> from punit.core.names import BudgetScope, TokenMode
>>> suite = SharedBudgetMonitor(BudgetScope.SUITE, token_budget=150)
>>> method = CostBudgetMonitor(static_token_charge=100, token_mode=TokenMode.STATIC)
>>> orch = BudgetOrchestrator(method, suite_monitor=suite)
>>> orch.record_and_propagate_tokens()
100
>>> orch.check_after_sample().should_terminate
False
>>> orch.record_and_propagate_tokens()
100
>>> orch.check_after_sample().reason.name
'SUITE_TOKEN_BUDGET_EXHAUSTED'
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union

from punit.budget.accumulator import GlobalCostAccumulator
from punit.budget.monitors import CostBudgetMonitor, SharedBudgetMonitor
from punit.budget.tokens import DefaultTokenChargeRecorder
from punit.core.names import (
    BudgetExhaustedBehavior,
    BudgetScope,
    TerminationReason,
    TokenMode,
)

AnyMonitor = Union[CostBudgetMonitor, SharedBudgetMonitor, GlobalCostAccumulator]


@dataclass(frozen=True)
class BudgetCheckResult:
    """Outcome of a budget check: ok, or the reason the run must stop."""

    reason: Optional[TerminationReason] = None

    @classmethod
    def ok(cls) -> "BudgetCheckResult":
        return cls(None)

    @classmethod
    def exhausted(cls, reason: TerminationReason) -> "BudgetCheckResult":
        return cls(reason)

    @property
    def should_terminate(self) -> bool:
        return self.reason is not None


class BudgetOrchestrator:
    """Per-invocation view over every budget scope that applies to it."""

    def __init__(
        self,
        method_monitor: CostBudgetMonitor,
        *,
        class_monitor: Optional[SharedBudgetMonitor] = None,
        suite_monitor: Optional[SharedBudgetMonitor] = None,
        accumulator: Optional[GlobalCostAccumulator] = None,
        token_recorder: Optional[DefaultTokenChargeRecorder] = None,
    ) -> None:
        self.method_monitor = method_monitor
        self.class_monitor = class_monitor
        self.suite_monitor = suite_monitor
        self.accumulator = accumulator
        self.token_recorder = token_recorder

    def _shared(self):
        return [m for m in (self.suite_monitor, self.class_monitor) if m is not None]

    def _check_global(self) -> Optional[TerminationReason]:
        if self.accumulator is None:
            return None
        return self.accumulator.check_time_budget() or self.accumulator.check_token_budget()

    # ---- checks ----

    def check_before_sample(self) -> BudgetCheckResult:
        reason = self._check_global()
        if reason is not None:
            return BudgetCheckResult.exhausted(reason)
        for shared in self._shared():
            reason = shared.check_time_budget() or shared.check_token_budget()
            if reason is not None:
                return BudgetCheckResult.exhausted(reason)
        reason = (
            self.method_monitor.check_time_budget()
            or self.method_monitor.check_token_budget_before_sample()
        )
        return BudgetCheckResult(reason)

    def check_after_sample(self) -> BudgetCheckResult:
        if self.accumulator is not None:
            reason = self.accumulator.check_token_budget()
            if reason is not None:
                return BudgetCheckResult.exhausted(reason)
        for shared in self._shared():
            reason = shared.check_token_budget()
            if reason is not None:
                return BudgetCheckResult.exhausted(reason)
        return BudgetCheckResult(self.method_monitor.check_token_budget_after_sample())

    # ---- token accounting ----

    def reset_token_recorder(self) -> None:
        if self.token_recorder is not None:
            self.token_recorder.reset_for_next_sample()

    def record_and_propagate_tokens(self) -> int:
        """Charge the finished sample to every scope; returns the tokens charged."""
        tokens = 0
        if self.token_recorder is not None:
            tokens = self.token_recorder.finalize_sample()
            self.method_monitor.record_dynamic_tokens(tokens)
        elif self.method_monitor.token_mode is TokenMode.STATIC:
            tokens = self.method_monitor.static_token_charge
            self.method_monitor.record_static_token_charge()
        if tokens > 0:
            for shared in self._shared():
                shared.add_tokens(tokens)
            if self.accumulator is not None:
                self.accumulator.record_tokens(tokens)
        return tokens

    # ---- exhaustion handling ----

    def _monitor_for(self, reason: TerminationReason) -> AnyMonitor:
        if reason.scope is BudgetScope.GLOBAL and self.accumulator is not None:
            return self.accumulator
        if reason.scope is BudgetScope.SUITE and self.suite_monitor is not None:
            return self.suite_monitor
        if reason.scope is BudgetScope.CLASS and self.class_monitor is not None:
            return self.class_monitor
        return self.method_monitor

    def determine_behavior(self, reason: TerminationReason) -> BudgetExhaustedBehavior:
        """The exhausted scope's own policy decides what happens to the verdict."""
        return self._monitor_for(reason).on_budget_exhausted

    def build_exhaustion_message(self, reason: TerminationReason) -> str:
        monitor = self._monitor_for(reason)
        label = (reason.scope or BudgetScope.METHOD).label
        if reason.is_time_budget_exhaustion():
            return (
                f"{label} time budget exhausted: {monitor.elapsed_ms}ms elapsed "
                f">= {monitor.time_budget_ms}ms budget"
            )
        if isinstance(monitor, GlobalCostAccumulator):
            return (
                f"{label} token budget exhausted: {monitor.tokens_consumed} tokens "
                f">= {monitor.token_budget} budget"
            )
        if (
            isinstance(monitor, CostBudgetMonitor)
            and monitor.token_mode is TokenMode.STATIC
        ):
            return (
                f"{label} token budget exhausted: {monitor.tokens_consumed} tokens "
                f"+ {monitor.static_token_charge} charge > {monitor.token_budget} budget"
            )
        return (
            f"{label} token budget exhausted: {monitor.tokens_consumed} tokens "
            f"> {monitor.token_budget} budget"
        )


def build_exhaustion_failure_message(
    reason: Optional[TerminationReason],
    details: Optional[str],
    samples_executed: int,
    planned_samples: int,
    observed_pass_rate: float,
    successes: int,
    min_pass_rate: float,
    elapsed_ms: int,
) -> str:
    """Multi-line failure text for a run whose budget ran out under FAIL."""
    description = reason.description if reason is not None else "Budget exhausted"
    lines = [f"PUnit FAILED: {description}."]
    if details:
        lines.append(f"  {details}")
    lines.append("")
    lines.append(f"  Samples executed: {samples_executed} of {planned_samples}")
    lines.append(f"  Failures: {samples_executed - successes}")
    lines.append(
        f"  Pass rate at termination: {observed_pass_rate * 100.0:.1f}% "
        f"({successes}/{samples_executed})"
    )
    lines.append(f"  Required pass rate: {min_pass_rate * 100.0:.1f}%")
    lines.append(f"  Elapsed: {elapsed_ms}ms")
    return "\n".join(lines)
