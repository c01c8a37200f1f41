"""
punit.stats.early_termination
=============================

Deterministic early-stopping bounds for a Bernoulli sample sequence.

Given the planned number of samples ``N`` and the minimum pass rate ``p``,
a run needs ``K = ceil(p * N)`` successes. After every sample two bounds are
checked:

- **IMPOSSIBILITY**: ``successes + remaining < K``. No continuation can reach
  the threshold; the run fails immediately.
- **SUCCESS_GUARANTEED**: ``successes >= K`` while samples remain. The
  threshold is already met whatever happens next.

Both are exact integer comparisons. The pass rate is converted through its
shortest decimal representation so that ``ceil(0.8 * 10)`` is 8, not 9.

Examples
--------
>>> from punit.stats.early_termination import EarlyTerminationEvaluator, required_successes
>>> required_successes(10, 0.8)
8
>>> ev = EarlyTerminationEvaluator(total_samples=10, min_pass_rate=0.8)
>>> ev.should_terminate(successes=1, samples_executed=4).reason.name
'IMPOSSIBILITY'
>>> ev.should_terminate(successes=4, samples_executed=4) is None
True
>>> EarlyTerminationEvaluator(10, 0.5).should_terminate(5, 5).reason.name
'SUCCESS_GUARANTEED'
"""

from __future__ import annotations
import math
import sys
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Optional

from punit.core.names import TerminationReason

# Stands in for "unreachable" when the pass rate is not a number.
UNREACHABLE = sys.maxsize


def required_successes(total_samples: int, min_pass_rate: float) -> int:
    """Return ``ceil(min_pass_rate * total_samples)`` computed exactly."""
    if math.isnan(min_pass_rate):
        return UNREACHABLE
    exact_rate = Fraction(repr(float(min_pass_rate)))
    return math.ceil(exact_rate * total_samples)


@dataclass(frozen=True)
class EarlyTermination:
    """A decision to stop, with a human-readable explanation."""

    reason: TerminationReason
    details: str


@dataclass(frozen=True)
class EarlyTerminationEvaluator:
    """Sample-by-sample evaluator of the two deterministic stopping bounds."""

    total_samples: int
    min_pass_rate: float
    required: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "required", required_successes(self.total_samples, self.min_pass_rate)
        )

    def should_terminate(
        self, successes: int, samples_executed: int
    ) -> Optional[EarlyTermination]:
        """Return an `EarlyTermination` when the outcome is already decided."""
        remaining = self.total_samples - samples_executed
        if successes >= self.required and remaining > 0:
            return EarlyTermination(
                TerminationReason.SUCCESS_GUARANTEED,
                success_guaranteed_message(
                    samples_executed, successes, self.required, remaining
                ),
            )
        if successes + remaining < self.required:
            return EarlyTermination(
                TerminationReason.IMPOSSIBILITY,
                impossibility_message(
                    samples_executed, successes, remaining, self.required
                ),
            )
        return None

    def failures_until_impossibility(
        self, successes: int, samples_executed: int
    ) -> int:
        """How many further failures the run can absorb while staying reachable."""
        remaining = self.total_samples - samples_executed
        return successes + remaining - self.required


def impossibility_message(
    samples_executed: int, successes: int, remaining: int, required: int
) -> str:
    return (
        f"After {samples_executed} samples with {successes} successes, "
        f"maximum possible successes ({successes} + {remaining} = "
        f"{successes + remaining}) is less than required ({required})"
    )


def success_guaranteed_message(
    samples_executed: int, successes: int, required: int, remaining: int
) -> str:
    rate = 100.0 * successes / samples_executed if samples_executed else 0.0
    return (
        f"After {samples_executed} samples with {successes} successes ({rate:.1f}%), "
        f"required min pass rate ({required} successes) already met. "
        f"Skipping {remaining} remaining samples."
    )
