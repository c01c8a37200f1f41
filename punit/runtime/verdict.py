"""
punit.runtime.verdict
=====================

Final pass/fail decision and the messages that explain it.

A run that was forced to fail (a budget ran out under the FAIL policy) fails
unconditionally. Otherwise it passes iff the observed pass rate, over the
samples actually executed, reaches the minimum pass rate.

Failure messages always state samples executed and planned, successes,
failures, the termination reason when there is one, and the elapsed time.
When the threshold came from a baseline the headline also carries the
confidence, the baseline rate and the specification id.

Examples
--------
>>> from punit.runtime.aggregator import SampleResultAggregator
>>> from punit.runtime.verdict import FinalVerdictDecider
>>> agg = SampleResultAggregator(total_samples=4)
>>> for ok in (True, True, True, False):
...     agg.record_success() if ok else agg.record_failure(AssertionError("wrong"))
>>> verdict = FinalVerdictDecider().decide(agg, min_pass_rate=0.7)
>>> verdict.passed
True
>>> verdict.message
'Probabilistic test passed: 75.00% >= 70.00% (3/4 samples succeeded)'
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

import structlog

from punit.budget.orchestrator import build_exhaustion_failure_message
from punit.core.names import TerminationReason
from punit.runtime.aggregator import SampleResultAggregator

logger = structlog.get_logger()

MAX_FAILURE_MESSAGE_LENGTH = 80


@dataclass(frozen=True)
class ThresholdOrigin:
    """Where a baseline-derived threshold came from."""

    spec_id: str
    baseline_rate: float
    baseline_samples: int
    confidence: float = 0.95


@dataclass(frozen=True)
class TestVerdict:
    __test__ = False

    passed: bool
    message: str
    termination_reason: Optional[TerminationReason]
    samples_executed: int
    planned_samples: int
    successes: int
    failures: int
    observed_pass_rate: float
    min_pass_rate: float
    elapsed_ms: int
    forced_failure: bool = False

    def __str__(self) -> str:
        return self.message


class FinalVerdictDecider:
    def is_passing(self, aggregator: SampleResultAggregator, min_pass_rate: float) -> bool:
        if aggregator.forced_failure:
            return False
        return aggregator.observed_pass_rate >= min_pass_rate

    def decide(
        self,
        aggregator: SampleResultAggregator,
        min_pass_rate: float,
        origin: Optional[ThresholdOrigin] = None,
    ) -> TestVerdict:
        passed = self.is_passing(aggregator, min_pass_rate)
        if passed:
            message = self.build_success_message(aggregator, min_pass_rate)
        elif aggregator.forced_failure:
            message = build_exhaustion_failure_message(
                aggregator.termination_reason,
                aggregator.termination_details,
                aggregator.samples_executed,
                aggregator.total_samples,
                aggregator.observed_pass_rate,
                aggregator.successes,
                min_pass_rate,
                aggregator.elapsed_ms,
            )
        else:
            message = self.build_failure_message(aggregator, min_pass_rate, origin)

        verdict = TestVerdict(
            passed=passed,
            message=message,
            termination_reason=aggregator.termination_reason,
            samples_executed=aggregator.samples_executed,
            planned_samples=aggregator.total_samples,
            successes=aggregator.successes,
            failures=aggregator.failures,
            observed_pass_rate=aggregator.observed_pass_rate,
            min_pass_rate=min_pass_rate,
            elapsed_ms=aggregator.elapsed_ms,
            forced_failure=aggregator.forced_failure,
        )
        logger.info(
            "verdict",
            passed=passed,
            observed=round(verdict.observed_pass_rate, 4),
            required=min_pass_rate,
            executed=verdict.samples_executed,
            planned=verdict.planned_samples,
            forced_failure=verdict.forced_failure,
        )
        return verdict

    @staticmethod
    def build_success_message(aggregator: SampleResultAggregator, min_pass_rate: float) -> str:
        return (
            f"Probabilistic test passed: {aggregator.observed_pass_rate * 100:.2f}% "
            f">= {min_pass_rate * 100:.2f}% "
            f"({aggregator.successes}/{aggregator.samples_executed} samples succeeded)"
        )

    def build_failure_message(
        self,
        aggregator: SampleResultAggregator,
        min_pass_rate: float,
        origin: Optional[ThresholdOrigin] = None,
    ) -> str:
        lines = [self._headline(aggregator, min_pass_rate, origin), ""]
        lines.append(
            f"  Samples executed: {aggregator.samples_executed} of {aggregator.total_samples}"
        )
        lines.append(f"  Successes: {aggregator.successes}")
        lines.append(f"  Failures: {aggregator.failures}")
        if aggregator.termination_reason is not None:
            lines.append(f"  Termination: {aggregator.termination_reason.name}")
            if aggregator.termination_details:
                lines.append(f"  Reason: {aggregator.termination_details}")
        lines.append(f"  Elapsed: {aggregator.elapsed_ms}ms")
        lines.extend(self._example_failures(aggregator))
        return "\n".join(lines)

    @staticmethod
    def _headline(
        aggregator: SampleResultAggregator,
        min_pass_rate: float,
        origin: Optional[ThresholdOrigin],
    ) -> str:
        observed = aggregator.observed_pass_rate * 100.0
        counts = f"({aggregator.successes}/{aggregator.samples_executed})"
        if origin is None:
            return (
                f"PUnit FAILED. Observed pass rate={observed:.1f}% {counts} "
                f"< min pass rate={min_pass_rate * 100.0:.1f}%."
            )
        return (
            f"PUnit FAILED with {origin.confidence * 100.0:.1f}% confidence "
            f"(alpha={1.0 - origin.confidence:.3f}). "
            f"Observed pass rate={observed:.1f}% {counts} "
            f"< min pass rate={min_pass_rate * 100.0:.1f}%. "
            f"Baseline={origin.baseline_rate * 100.0:.1f}% (N={origin.baseline_samples}), "
            f"spec={origin.spec_id}"
        )

    @staticmethod
    def _example_failures(aggregator: SampleResultAggregator) -> List[str]:
        examples = aggregator.example_failures
        if not examples:
            return []
        lines = [
            "",
            f"  Example failures (showing {len(examples)} of {aggregator.failures}):",
        ]
        for i, failure in enumerate(examples, start=1):
            text = str(failure) or type(failure).__name__
            if len(text) > MAX_FAILURE_MESSAGE_LENGTH:
                text = text[: MAX_FAILURE_MESSAGE_LENGTH - 3] + "..."
            lines.append(f"    [Sample {i}] {text}")
        return lines
