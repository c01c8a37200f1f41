"""
punit.runtime.runners
=====================

Runners that execute probabilistic tests end to end.

A `ProbabilisticTest` is the declarative description of one test (how many
samples, which threshold or baseline, which budgets). A runner provides the
execution environment: it resolves the threshold, optionally selects a
baseline, wires the budget scopes and the global accumulator, drives the
trial strategy and renders the verdict.

Threshold resolution starts from the operational approach the test pins
(`punit.runtime.approach`) and the baseline data available, looked up in
this order:

1. inline baseline inputs (``baseline_rate`` and ``baseline_samples``)
2. the baseline selected from the repository, or the specification loaded
   by ``spec_id`` / ``use_case_id``, when it carries an empirical basis

A ``min_pass_rate`` with only a ``use_case_id`` runs spec-less: no
specification is loaded. With baseline data the threshold is derived
(SAMPLE_SIZE_FIRST, CONFIDENCE_FIRST) or checked for the confidence it
implies (THRESHOLD_FIRST). A loaded specification without an empirical basis
falls back to its own ``requirements.min_pass_rate``.

Examples
--------
>>> from punit.runtime.runners import ProbabilisticTest, ProbabilisticTestRunner
>>> runner = ProbabilisticTestRunner(ProbabilisticTest(samples=20, min_pass_rate=0.9))
>>> verdict = runner.run(lambda: True)
>>> verdict.passed, verdict.samples_executed, verdict.termination_reason.name
(True, 18, 'SUCCESS_GUARANTEED')
"""

from __future__ import annotations
import inspect
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from punit.baseline.footprint import compute_footprint
from punit.baseline.repository import BaselineRepository
from punit.baseline.selection import BaselineSelector, SelectionResult
from punit.budget import accumulator as global_accumulator
from punit.budget import suite as suite_budget
from punit.budget.monitors import SharedBudgetMonitor
from punit.core.errors import ConfigurationError, NoCompatibleBaselineError
from punit.core.names import (
    BudgetExhaustedBehavior,
    BudgetScope,
    ExceptionPolicy,
    TokenMode,
)
from punit.core.traits import LedgerOps
from punit.covariates.model import CovariateDeclaration
from punit.covariates.resolvers import CovariateProfileResolver, ResolutionContext
from punit.runtime.aggregator import DEFAULT_MAX_EXAMPLE_FAILURES
from punit.runtime.approach import ApproachParameters
from punit.runtime.pacing import Pacing, check_feasibility, resolve_pacing
from punit.runtime.strategy import BernoulliTrialsConfig, BernoulliTrialsStrategy
from punit.runtime.verdict import FinalVerdictDecider, TestVerdict, ThresholdOrigin
from punit.spec.expiration import ExpirationEvaluator
from punit.spec.model import ExecutionSpecification
from punit.spec.registry import SpecificationRegistry, default_registry
from punit.stats.threshold import (
    DerivedThreshold,
    OperationalApproach,
    derive_confidence_first,
    derive_sample_size_first,
    derive_threshold_first,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProbabilisticTest:
    """Declarative configuration of one probabilistic test.

    ``confidence`` alone selects SAMPLE_SIZE_FIRST; together with
    ``min_detectable_effect`` and ``power`` it selects CONFIDENCE_FIRST, in
    which case ``samples`` is replaced by the power-analysis result.
    """

    samples: int = 100
    min_pass_rate: Optional[float] = None
    use_case_id: Optional[str] = None
    spec_id: Optional[str] = None
    baseline_rate: Optional[float] = None
    baseline_samples: Optional[int] = None
    confidence: Optional[float] = None
    min_detectable_effect: Optional[float] = None
    power: Optional[float] = None
    factors: Mapping[str, Any] = field(default_factory=dict)
    covariates: CovariateDeclaration = CovariateDeclaration.EMPTY
    time_budget_ms: int = 0
    token_budget: int = 0
    token_charge: int = 0
    token_mode: Optional[TokenMode] = None
    on_budget_exhausted: BudgetExhaustedBehavior = BudgetExhaustedBehavior.FAIL
    max_example_failures: int = DEFAULT_MAX_EXAMPLE_FAILURES
    exception_policy: ExceptionPolicy = ExceptionPolicy.FAIL_SAMPLE
    success_criteria: Optional[str] = None
    pacing: Optional[Pacing] = None

    def __post_init__(self) -> None:
        self.approach_parameters.validate()
        if (self.baseline_rate is None) != (self.baseline_samples is None):
            raise ConfigurationError(
                "baselineRate and baselineSamples must be given together"
            )
        if self.baseline_rate is not None and not 0.0 <= self.baseline_rate <= 1.0:
            raise ConfigurationError(
                f"baselineRate must be in [0, 1], got: {self.baseline_rate}"
            )
        if self.baseline_samples is not None and self.baseline_samples <= 0:
            raise ConfigurationError(
                f"baselineSamples must be positive, got: {self.baseline_samples}"
            )

    @property
    def name(self) -> str:
        return self.spec_id or self.use_case_id or "probabilistic-test"

    @property
    def approach_parameters(self) -> ApproachParameters:
        return ApproachParameters(
            self.min_pass_rate, self.confidence, self.min_detectable_effect, self.power
        )


@dataclass(frozen=True)
class BaselineData:
    """Observed baseline the threshold is derived from."""

    source: str
    samples: int
    successes: int

    @property
    def rate(self) -> float:
        return self.successes / self.samples


@dataclass(frozen=True)
class ResolvedThreshold:
    min_pass_rate: float
    samples: int
    origin: Optional[ThresholdOrigin] = None
    spec: Optional[ExecutionSpecification] = None
    selection: Optional[SelectionResult] = None
    approach: Optional[OperationalApproach] = None
    derived: Optional[DerivedThreshold] = None


def accepts_token_recorder(body: Callable[..., Any]) -> bool:
    """True when `body` takes a positional parameter for the token recorder."""
    try:
        params = inspect.signature(body).parameters.values()
    except (TypeError, ValueError):
        return False
    return any(
        p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)
        for p in params
    )


class ProbabilisticTestRunner:
    """
    Sequential runner for one probabilistic test.

    Provides:
    - Threshold resolution (explicit, inline baseline, stored specification)
    - Baseline selection by footprint and covariates when a repository is set
    - Budget wiring (method, optional class, process-wide suite scope)
    - Pacing between samples, overridable by properties and environment
    - Global cost accounting and an optional run ledger
    - Cooperative cancellation through `cancel()`
    """

    def __init__(
        self,
        test: ProbabilisticTest,
        *,
        registry: Optional[SpecificationRegistry] = None,
        repository: Optional[BaselineRepository] = None,
        selector: Optional[BaselineSelector] = None,
        profile_resolver: Optional[CovariateProfileResolver] = None,
        resolution_context: Optional[ResolutionContext] = None,
        class_monitor: Optional[SharedBudgetMonitor] = None,
        ledger: Optional[LedgerOps] = None,
        properties: Optional[Mapping[str, Any]] = None,
        decider: Optional[FinalVerdictDecider] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.test = test
        self._registry = registry
        self.repository = repository
        self.selector = selector or BaselineSelector()
        self.profile_resolver = profile_resolver or CovariateProfileResolver()
        self.resolution_context = resolution_context
        self.class_monitor = class_monitor
        self.ledger = ledger
        self.properties = properties
        self.decider = decider or FinalVerdictDecider()
        self.sleep = sleep
        self.run_id = f"{test.name}#{uuid.uuid4().hex[:8]}"
        self._cancel = threading.Event()
        self._strategy: Optional[BernoulliTrialsStrategy] = None

    @property
    def registry(self) -> SpecificationRegistry:
        return self._registry or default_registry()

    def cancel(self) -> None:
        """Request that no further samples be dispatched."""
        self._cancel.set()

    @property
    def strategy(self) -> Optional[BernoulliTrialsStrategy]:
        return self._strategy

    # ---- baseline & threshold ----

    def select_baseline(self) -> SelectionResult:
        """Pick the stored baseline that applies to this run.

        Raises:
            NoCompatibleBaselineError: no candidate carries the expected
                footprint, or none agrees on every CONFIGURATION covariate
        """
        test = self.test
        if test.use_case_id is None:
            raise ConfigurationError("Baseline selection requires a use case id")
        if self.repository is None:
            raise ConfigurationError("Baseline selection requires a baseline repository")
        footprint = compute_footprint(test.use_case_id, test.factors, test.covariates)
        candidates = self.repository.find_candidates(test.use_case_id, footprint)
        if not candidates:
            raise NoCompatibleBaselineError(
                test.use_case_id,
                footprint,
                self.repository.find_available_footprints(test.use_case_id),
            )
        context = self.resolution_context or ResolutionContext(
            properties=dict(self.properties or {})
        )
        profile = self.profile_resolver.resolve(test.covariates, context)
        return self.selector.select(candidates, profile, test.covariates)

    def _load_spec(self) -> Tuple[Optional[ExecutionSpecification], Optional[SelectionResult]]:
        test = self.test
        if self.repository is not None and test.use_case_id is not None:
            selection = self.select_baseline()
            return selection.selected.spec, selection
        spec_id = test.spec_id or test.use_case_id
        if spec_id is None:
            return None, None
        return self.registry.resolve(spec_id), None

    def _has_spec_source(self) -> bool:
        test = self.test
        return test.spec_id is not None or (
            self.repository is not None and test.use_case_id is not None
        )

    def resolve_threshold(self) -> ResolvedThreshold:
        """Settle the operational approach, the sample count and the threshold.

        Raises:
            ConfigurationError: no threshold source, or an approach that needs
                baseline data when none is available
        """
        test = self.test
        params = test.approach_parameters
        spec: Optional[ExecutionSpecification] = None
        selection: Optional[SelectionResult] = None
        baseline: Optional[BaselineData] = None
        if test.baseline_rate is not None:
            baseline = BaselineData(
                test.spec_id or "(inline)",
                test.baseline_samples,
                round(test.baseline_rate * test.baseline_samples),
            )
        elif test.min_pass_rate is None or self._has_spec_source():
            spec, selection = self._load_spec()
            if spec is not None and spec.has_empirical_basis():
                baseline = BaselineData(spec.id, spec.baseline_samples, spec.baseline_successes)

        approach = params.resolve(has_baseline=baseline is not None)
        if approach is None:
            if spec is None:
                raise ConfigurationError(
                    "No pass-rate threshold: set min_pass_rate, baseline_rate and "
                    "baseline_samples, or a spec_id / use_case_id"
                )
            return ResolvedThreshold(spec.min_pass_rate, test.samples, None, spec, selection)
        if baseline is None:
            return ResolvedThreshold(
                test.min_pass_rate, test.samples, None, spec, selection, approach
            )

        if approach is OperationalApproach.THRESHOLD_FIRST:
            derived = derive_threshold_first(
                baseline.samples, baseline.successes, test.samples, test.min_pass_rate
            )
            if not derived.is_statistically_sound:
                logger.warning(
                    "threshold_statistically_unsound",
                    test=test.name,
                    min_pass_rate=test.min_pass_rate,
                    baseline_rate=round(baseline.rate, 4),
                    implied_confidence=round(derived.context.confidence, 4),
                )
        elif approach is OperationalApproach.CONFIDENCE_FIRST:
            try:
                derived = derive_confidence_first(
                    baseline.samples,
                    baseline.successes,
                    test.min_detectable_effect,
                    test.confidence,
                    test.power,
                )
            except ConfigurationError as exc:
                raise ConfigurationError(
                    f"Power analysis against baseline {baseline.source} failed: {exc}"
                ) from exc
            logger.info(
                "confidence_first_sample_size",
                test=test.name,
                samples=derived.context.test_samples,
                baseline_rate=round(baseline.rate, 4),
                min_detectable_effect=test.min_detectable_effect,
                power=test.power,
            )
        else:
            derived = derive_sample_size_first(
                baseline.samples, baseline.successes, test.samples, params.effective_confidence
            )
        origin = ThresholdOrigin(
            baseline.source, baseline.rate, baseline.samples, derived.context.confidence
        )
        return ResolvedThreshold(
            derived.value,
            derived.context.test_samples,
            origin,
            spec,
            selection,
            approach,
            derived,
        )

    # ---- execution ----

    def run(
        self,
        body: Callable[..., Any],
        *,
        uses_token_recorder: Optional[bool] = None,
    ) -> TestVerdict:
        """Execute `body` once per sample and return the verdict.

        A body taking one positional argument receives the dynamic token
        recorder. Raises `SampleExecutionAborted` under ABORT_TEST.
        """
        test = self.test
        threshold = self.resolve_threshold()
        if threshold.spec is not None:
            ExpirationEvaluator.evaluate(threshold.spec)

        pacing = resolve_pacing(test.pacing, self.properties)
        check_feasibility(pacing, threshold.samples, test.time_budget_ms)

        criteria = test.success_criteria
        if criteria is None and threshold.spec is not None:
            criteria = threshold.spec.requirements.success_criteria
        config = BernoulliTrialsConfig(
            samples=threshold.samples,
            min_pass_rate=threshold.min_pass_rate,
            time_budget_ms=test.time_budget_ms,
            token_budget=test.token_budget,
            token_charge=test.token_charge,
            token_mode=test.token_mode,
            on_budget_exhausted=test.on_budget_exhausted,
            max_example_failures=test.max_example_failures,
            exception_policy=test.exception_policy,
            success_criteria=criteria or "",
            pacing=pacing,
        )
        if uses_token_recorder is None:
            uses_token_recorder = accepts_token_recorder(body)
        accumulator = global_accumulator.get_or_create(self.properties)
        strategy = BernoulliTrialsStrategy(
            config,
            uses_token_recorder=uses_token_recorder,
            class_monitor=self.class_monitor,
            suite_monitor=suite_budget.get_monitor(),
            accumulator=accumulator,
            ledger=self.ledger,
            run_id=self.run_id,
            cancel_event=self._cancel,
            sleep=self.sleep,
        )
        self._strategy = strategy
        logger.info(
            "probabilistic_test_started",
            run_id=self.run_id,
            samples=threshold.samples,
            min_pass_rate=round(threshold.min_pass_rate, 4),
            approach=threshold.approach.value if threshold.approach is not None else None,
            token_mode=strategy.token_mode.value,
            pacing_delay_ms=pacing.effective_delay_ms,
            spec=threshold.spec.id if threshold.spec is not None else None,
        )
        try:
            aggregator = strategy.execute(body)
        finally:
            accumulator.record_test_method_completed()

        verdict = self.decider.decide(aggregator, threshold.min_pass_rate, threshold.origin)
        if self.ledger is not None:
            self.ledger.signal(
                self.run_id,
                verdict.samples_executed,
                "verdict",
                {
                    "passed": verdict.passed,
                    "observed_pass_rate": verdict.observed_pass_rate,
                    "min_pass_rate": verdict.min_pass_rate,
                    "samples_executed": verdict.samples_executed,
                },
            )
        return verdict


class BatchRunner:
    """
    Runs several probabilistic tests that share one CLASS budget.

    Every test gets its own `ProbabilisticTestRunner`; the class monitor is
    built once from the class-level limits and handed to each of them.
    """

    def __init__(
        self,
        tests: Sequence[Tuple[ProbabilisticTest, Callable[..., Any]]],
        *,
        time_budget_ms: int = 0,
        token_budget: int = 0,
        on_budget_exhausted: BudgetExhaustedBehavior = BudgetExhaustedBehavior.FAIL,
        runner_factory: Optional[Callable[..., ProbabilisticTestRunner]] = None,
    ) -> None:
        self.tests = list(tests)
        self.class_monitor: Optional[SharedBudgetMonitor] = None
        if time_budget_ms > 0 or token_budget > 0:
            self.class_monitor = SharedBudgetMonitor(
                BudgetScope.CLASS,
                time_budget_ms=time_budget_ms,
                token_budget=token_budget,
                on_budget_exhausted=on_budget_exhausted,
            )
        self.runner_factory = runner_factory or ProbabilisticTestRunner
        self.verdicts: List[TestVerdict] = []

    def run_all(self) -> List[TestVerdict]:
        self.verdicts = []
        for test, body in self.tests:
            runner = self.runner_factory(test, class_monitor=self.class_monitor)
            self.verdicts.append(runner.run(body))
        return list(self.verdicts)

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_tests": len(self.tests),
            "passed": sum(1 for v in self.verdicts if v.passed),
            "failed": sum(1 for v in self.verdicts if not v.passed),
            "class_tokens_consumed": (
                self.class_monitor.tokens_consumed if self.class_monitor else 0
            ),
        }
