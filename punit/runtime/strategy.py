"""
punit.runtime.strategy
======================

Bernoulli-trials strategy: the per-sample state machine of one probabilistic
test.

Every sample goes through the same fixed sequence:

1. pre-sample budget check (global, suite, class, method)
2. reset of the dynamic token recorder
3. pacing delay, skipped before the first sample
4. execution of the sample body
5. token propagation to every active scope and the global accumulator
6. post-sample budget check
7. early-termination check (impossibility / success guaranteed)
8. completion check (all planned samples executed)

Any step may move the strategy from RUNNING to TERMINATED. Cancellation is
cooperative: the flag is consulted before each sample is dispatched, and a
running sample is never interrupted.

Examples
--------
>>> from punit.runtime.strategy import BernoulliTrialsConfig, BernoulliTrialsStrategy
>>> strategy = BernoulliTrialsStrategy(BernoulliTrialsConfig(samples=10, min_pass_rate=0.5))
>>> agg = strategy.execute(lambda: True)
>>> agg.samples_executed, agg.termination_reason.name
(5, 'SUCCESS_GUARANTEED')
"""

from __future__ import annotations
import threading
import time
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional

import structlog

from punit.budget.accumulator import GlobalCostAccumulator
from punit.budget.monitors import CostBudgetMonitor, SharedBudgetMonitor
from punit.budget.orchestrator import BudgetOrchestrator
from punit.budget.tokens import DefaultTokenChargeRecorder
from punit.core.errors import ConfigurationError, SampleExecutionAborted
from punit.core.names import (
    BudgetExhaustedBehavior,
    ExceptionPolicy,
    TerminationReason,
    TokenMode,
)
from punit.core.traits import LedgerOps
from punit.runtime.aggregator import (
    DEFAULT_MAX_EXAMPLE_FAILURES,
    SampleOutcome,
    SampleRecord,
    SampleResultAggregator,
)
from punit.runtime.executor import SampleExecutor
from punit.runtime.pacing import Pacer, Pacing
from punit.spec.criteria import SuccessCriteria
from punit.stats.early_termination import EarlyTerminationEvaluator

logger = structlog.get_logger()

ABORT_DETAILS = "Test aborted due to exception"


@dataclass(frozen=True)
class BernoulliTrialsConfig:
    """Parameters of one probabilistic test invocation.

    ``token_mode`` left as None is inferred: DYNAMIC when the body takes a
    token recorder, STATIC when a per-sample charge is set, NONE otherwise.
    """

    samples: int
    min_pass_rate: float
    time_budget_ms: int = 0
    token_budget: int = 0
    token_charge: int = 0
    token_mode: Optional[TokenMode] = None
    on_budget_exhausted: BudgetExhaustedBehavior = BudgetExhaustedBehavior.FAIL
    max_example_failures: int = DEFAULT_MAX_EXAMPLE_FAILURES
    exception_policy: ExceptionPolicy = ExceptionPolicy.FAIL_SAMPLE
    success_criteria: str = ""
    pacing: Pacing = Pacing()

    def __post_init__(self) -> None:
        if self.samples <= 0:
            raise ConfigurationError(f"samples must be positive, got: {self.samples}")
        if not 0.0 <= self.min_pass_rate <= 1.0:
            raise ConfigurationError(
                f"minPassRate must be in [0, 1], got: {self.min_pass_rate}"
            )
        for name in ("time_budget_ms", "token_budget", "token_charge", "max_example_failures"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative, got: {getattr(self, name)}")

    def resolve_token_mode(self, uses_token_recorder: bool = False) -> TokenMode:
        if self.token_mode is not None:
            return self.token_mode
        if uses_token_recorder:
            return TokenMode.DYNAMIC
        if self.token_charge > 0:
            return TokenMode.STATIC
        return TokenMode.NONE


class StrategyState(str, Enum):
    RUNNING = "RUNNING"
    TERMINATED = "TERMINATED"


class InterceptAction(str, Enum):
    CONTINUE = "CONTINUE"
    TERMINATE = "TERMINATE"
    ABORT = "ABORT"


@dataclass(frozen=True)
class InterceptResult:
    """What the strategy decided after one sample."""

    action: InterceptAction
    failure: Optional[BaseException] = None
    reason: Optional[TerminationReason] = None
    details: Optional[str] = None
    failed: bool = False

    @classmethod
    def continue_(cls) -> "InterceptResult":
        return cls(InterceptAction.CONTINUE)

    @classmethod
    def continue_with_failure(cls, failure: Optional[BaseException]) -> "InterceptResult":
        return cls(InterceptAction.CONTINUE, failure=failure, failed=True)

    @classmethod
    def terminate(
        cls, reason: TerminationReason, details: Optional[str] = None
    ) -> "InterceptResult":
        return cls(InterceptAction.TERMINATE, reason=reason, details=details)

    @classmethod
    def terminate_with_failure(
        cls,
        reason: TerminationReason,
        details: Optional[str] = None,
        failure: Optional[BaseException] = None,
    ) -> "InterceptResult":
        return cls(
            InterceptAction.TERMINATE, failure=failure, reason=reason, details=details, failed=True
        )

    @classmethod
    def abort(cls, failure: BaseException) -> "InterceptResult":
        return cls(
            InterceptAction.ABORT,
            failure=failure,
            reason=TerminationReason.COMPLETED,
            details=ABORT_DETAILS,
            failed=True,
        )

    @property
    def should_terminate(self) -> bool:
        return self.action is not InterceptAction.CONTINUE

    @property
    def should_abort(self) -> bool:
        return self.action is InterceptAction.ABORT


class BernoulliTrialsStrategy:
    """Drives the sample loop of one invocation; owned by a single thread."""

    def __init__(
        self,
        config: BernoulliTrialsConfig,
        *,
        uses_token_recorder: bool = False,
        class_monitor: Optional[SharedBudgetMonitor] = None,
        suite_monitor: Optional[SharedBudgetMonitor] = None,
        accumulator: Optional[GlobalCostAccumulator] = None,
        ledger: Optional[LedgerOps] = None,
        run_id: str = "run",
        cancel_event: Optional[threading.Event] = None,
        clock=time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.token_mode = config.resolve_token_mode(uses_token_recorder)
        self.uses_token_recorder = uses_token_recorder
        # A body that takes a recorder always gets one; only DYNAMIC charges it.
        self.token_recorder: Optional[DefaultTokenChargeRecorder] = None
        if uses_token_recorder or self.token_mode is TokenMode.DYNAMIC:
            self.token_recorder = DefaultTokenChargeRecorder(config.token_budget)
        if uses_token_recorder and self.token_mode is not TokenMode.DYNAMIC:
            logger.info(
                "token_recorder_not_charged", run_id=run_id, token_mode=self.token_mode.value
            )
        method_monitor = CostBudgetMonitor(
            time_budget_ms=config.time_budget_ms,
            token_budget=config.token_budget,
            static_token_charge=config.token_charge,
            token_mode=self.token_mode,
            on_budget_exhausted=config.on_budget_exhausted,
            clock=clock,
        )
        self.orchestrator = BudgetOrchestrator(
            method_monitor,
            class_monitor=class_monitor,
            suite_monitor=suite_monitor,
            accumulator=accumulator,
            token_recorder=(
                self.token_recorder if self.token_mode is TokenMode.DYNAMIC else None
            ),
        )
        self.aggregator = SampleResultAggregator(
            config.samples, config.max_example_failures, clock=clock
        )
        self.evaluator = EarlyTerminationEvaluator(config.samples, config.min_pass_rate)
        self.executor = SampleExecutor(
            config.exception_policy, SuccessCriteria.parse(config.success_criteria)
        )
        self.pacer = Pacer(config.pacing, sleep)
        self.accumulator = accumulator
        self.ledger = ledger
        self.run_id = run_id
        self.cancel_event = cancel_event or threading.Event()
        self.state = StrategyState.RUNNING

    # ---- lifecycle ----

    @property
    def is_terminated(self) -> bool:
        return self.state is StrategyState.TERMINATED

    def cancel(self) -> None:
        """Stop dispatching samples; the sample in flight, if any, finishes."""
        self.cancel_event.set()

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def execute(self, body: Callable[..., Any]) -> SampleResultAggregator:
        """Run samples until the strategy terminates or is cancelled.

        Under ABORT_TEST a raising body ends the run with
        `SampleExecutionAborted`, chained to the body's exception.
        """
        while not self.is_terminated:
            if self.is_cancelled:
                logger.info(
                    "sample_sequence_cancelled",
                    run_id=self.run_id,
                    executed=self.aggregator.samples_executed,
                    planned=self.config.samples,
                )
                break
            result = self.run_sample(body)
            if result.should_abort:
                raise result.failure from result.failure.cause
        return self.aggregator

    # ---- one sample ----

    def run_sample(self, body: Callable[..., Any]) -> InterceptResult:
        if self.is_terminated:
            raise RuntimeError("Strategy already terminated")
        index = self.aggregator.samples_executed + 1

        check = self.orchestrator.check_before_sample()
        if check.should_terminate:
            return self._terminate_on_budget(check.reason)

        self.orchestrator.reset_token_recorder()
        if self.token_recorder is not None and self.token_mode is not TokenMode.DYNAMIC:
            self.token_recorder.reset_for_next_sample()
        self.pacer.before_sample()

        call = partial(body, self.token_recorder) if self.uses_token_recorder else body
        try:
            outcome = self.executor.execute(call, index)
        except SampleExecutionAborted as exc:
            self.aggregator.record_exception(exc.cause)
            self._record_sample(index, SampleOutcome.failed(exc.cause), 0)
            self._terminate(TerminationReason.COMPLETED, ABORT_DETAILS)
            logger.error(
                "sample_sequence_aborted",
                run_id=self.run_id,
                sample=index,
                error=f"{type(exc.cause).__name__}: {exc.cause}",
            )
            return InterceptResult.abort(
                SampleExecutionAborted(index, exc.cause, self._abort_summary())
            )
        self.aggregator.record(outcome)

        tokens = self.orchestrator.record_and_propagate_tokens()
        if self.accumulator is not None:
            self.accumulator.record_sample_executed()
        self._record_sample(index, outcome, tokens)

        check = self.orchestrator.check_after_sample()
        if check.should_terminate:
            return self._terminate_on_budget(check.reason)

        early = self.evaluator.should_terminate(
            self.aggregator.successes, self.aggregator.samples_executed
        )
        if early is not None:
            self._terminate(early.reason, early.details)
            logger.info(
                "early_termination",
                run_id=self.run_id,
                reason=early.reason.name,
                executed=self.aggregator.samples_executed,
                successes=self.aggregator.successes,
                required=self.evaluator.required,
            )
            if early.reason is TerminationReason.IMPOSSIBILITY:
                return InterceptResult.terminate_with_failure(
                    early.reason, early.details, outcome.cause
                )
            return InterceptResult.terminate(early.reason, early.details)

        if self.aggregator.samples_executed >= self.config.samples:
            self._terminate(TerminationReason.COMPLETED)
            return InterceptResult.terminate(TerminationReason.COMPLETED)

        if outcome.success:
            return InterceptResult.continue_()
        return InterceptResult.continue_with_failure(outcome.cause)

    # ---- helpers ----

    def _terminate(self, reason: TerminationReason, details: Optional[str] = None) -> None:
        self.aggregator.set_terminated(reason, details)
        self.state = StrategyState.TERMINATED
        if self.ledger is not None:
            self.ledger.signal(
                self.run_id,
                self.aggregator.samples_executed,
                "terminated",
                {"reason": reason.name, "details": details},
            )

    def _terminate_on_budget(self, reason: TerminationReason) -> InterceptResult:
        details = self.orchestrator.build_exhaustion_message(reason)
        behavior = self.orchestrator.determine_behavior(reason)
        if self.ledger is not None:
            self.ledger.record_budget_exhausted(
                self.run_id,
                self.aggregator.samples_executed,
                reason=reason.name,
                behavior=behavior.value,
                details=details,
            )
        self._terminate(reason, details)
        if behavior is BudgetExhaustedBehavior.FAIL:
            self.aggregator.set_forced_failure(True)
        logger.warning(
            "budget_exhausted",
            run_id=self.run_id,
            reason=reason.name,
            behavior=behavior.value,
            executed=self.aggregator.samples_executed,
            planned=self.config.samples,
            details=details,
        )
        if behavior is BudgetExhaustedBehavior.FAIL:
            return InterceptResult.terminate_with_failure(reason, details)
        return InterceptResult.terminate(reason, details)

    def _record_sample(self, index: int, outcome: SampleOutcome, tokens: int) -> None:
        if self.ledger is None:
            return
        self.ledger.record_sample(
            self.run_id, SampleRecord(index, outcome.success, outcome.failure_message, tokens)
        )
        if tokens > 0:
            self.ledger.record_token_charge(self.run_id, index, tokens)

    def _abort_summary(self) -> str:
        agg = self.aggregator
        return "\n".join(
            [
                f"  Samples executed: {agg.samples_executed} of {self.config.samples}",
                f"  Successes: {agg.successes}",
                f"  Failures: {agg.failures}",
                f"  Elapsed: {agg.elapsed_ms}ms",
            ]
        )
