"""
punit.runtime.aggregator
========================

Running tally of one probabilistic test invocation.

- `SampleOutcome`: the immutable result of one sample
- `SampleResultAggregator`: successes, failures, a capped list of example
  failure causes, the termination reason and the forced-failure flag
- `SampleRecord` / `reduce_sample_counts`: ledger form of an outcome and the
  reducer that recounts a run from its ledger

An aggregator is owned by the single thread driving the sample loop and has
no locking. Failure causes beyond ``max_example_failures`` are counted but not
kept. The termination reason is set at most once; later calls are ignored.

Examples
--------
>>> from punit.runtime.aggregator import SampleResultAggregator
>>> agg = SampleResultAggregator(total_samples=20, max_example_failures=3)
>>> for i in range(10):
...     agg.record_failure(AssertionError(f"bad answer {i}"))
>>> agg.failures, len(agg.example_failures)
(10, 3)
>>> agg.record_success()
>>> round(agg.observed_pass_rate, 3), agg.remaining_samples
(0.091, 9)
"""

from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from punit.core.ledger import LedgerBase, PayloadRegistry
from punit.core.names import Namespace, TerminationReason

DEFAULT_MAX_EXAMPLE_FAILURES = 5


@dataclass(frozen=True)
class SampleOutcome:
    """Result of one sample; `cause` is set for failures only."""

    success: bool
    cause: Optional[BaseException] = None

    @classmethod
    def passed(cls) -> "SampleOutcome":
        return cls(True)

    @classmethod
    def failed(cls, cause: Optional[BaseException] = None) -> "SampleOutcome":
        return cls(False, cause)

    @property
    def failure_message(self) -> Optional[str]:
        if self.success or self.cause is None:
            return None
        return str(self.cause) or type(self.cause).__name__


class SampleResultAggregator:
    def __init__(
        self,
        total_samples: int,
        max_example_failures: int = DEFAULT_MAX_EXAMPLE_FAILURES,
        clock=time.monotonic,
    ) -> None:
        self.total_samples = total_samples
        self.max_example_failures = max_example_failures
        self._clock = clock
        self._started = clock()
        self.successes = 0
        self.failures = 0
        self._examples: List[BaseException] = []
        self.termination_reason: Optional[TerminationReason] = None
        self.termination_details: Optional[str] = None
        self.forced_failure = False

    # ---- recording ----

    def record(self, outcome: SampleOutcome) -> None:
        if outcome.success:
            self.record_success()
        else:
            self.record_failure(outcome.cause)

    def record_success(self) -> None:
        self.successes += 1

    def record_failure(self, cause: Optional[BaseException] = None) -> None:
        self.failures += 1
        if cause is not None and len(self._examples) < self.max_example_failures:
            self._examples.append(cause)

    def record_exception(self, exc: BaseException) -> None:
        """A sample body raised; counts as a failure."""
        self.record_failure(exc)

    def set_terminated(self, reason: TerminationReason, details: Optional[str] = None) -> bool:
        """Record why the run stopped; returns False if a reason was already set."""
        if self.termination_reason is not None:
            return False
        self.termination_reason = reason
        self.termination_details = details
        return True

    def set_completed(self) -> bool:
        return self.set_terminated(TerminationReason.COMPLETED)

    def set_forced_failure(self, forced: bool = True) -> None:
        self.forced_failure = forced

    # ---- queries ----

    @property
    def samples_executed(self) -> int:
        return self.successes + self.failures

    @property
    def remaining_samples(self) -> int:
        return self.total_samples - self.samples_executed

    @property
    def observed_pass_rate(self) -> float:
        executed = self.samples_executed
        return self.successes / executed if executed else 0.0

    @property
    def elapsed_ms(self) -> int:
        return round((self._clock() - self._started) * 1000)

    @property
    def example_failures(self) -> Tuple[BaseException, ...]:
        return tuple(self._examples)

    def was_terminated_early(self) -> bool:
        return (
            self.termination_reason is not None
            and self.termination_reason.is_early_termination()
        )

    def is_complete(self) -> bool:
        return (
            self.termination_reason is not None
            or self.samples_executed >= self.total_samples
        )


# ---- ledger form ----


@dataclass(frozen=True)
class SampleRecord:
    index: int
    success: bool
    failure: Optional[str] = None
    tokens: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "success": self.success,
            "failure": self.failure,
            "tokens": self.tokens,
        }


PayloadRegistry.register("SampleRecord", lambda d: SampleRecord(**d))


def reduce_sample_counts(ledger: LedgerBase, *, run_id: str) -> Tuple[int, int]:
    """Recount (samples executed, successes) from a run's ``samples`` rows."""
    executed = successes = 0
    for row in ledger.reader().iter_rows(namespace=Namespace.SAMPLES, entity=run_id):
        payload = row.payload
        if isinstance(payload, SampleRecord):
            success = payload.success
        elif isinstance(payload, dict) and "success" in payload:
            success = bool(payload["success"])
        else:
            continue
        executed += 1
        successes += int(success)
    return executed, successes
