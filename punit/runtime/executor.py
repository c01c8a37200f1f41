"""
punit.runtime.executor
======================

Runs one sample body and turns what happened into a `SampleOutcome`.

- returning normally is a success, except that a body returning ``False``
  fails, and a body returning a mapping is judged by the success criteria
  when some are configured;
- ``AssertionError`` is a failure;
- any other exception is a failure under ``FAIL_SAMPLE`` and aborts the run
  under ``ABORT_TEST`` (`SampleExecutionAborted`, chained to the cause).

Examples
--------
>>> from punit.runtime.executor import SampleExecutor
>>> from punit.spec.criteria import SuccessCriteria
>>> ex = SampleExecutor(criteria=SuccessCriteria.parse("score >= 0.5"))
>>> ex.execute(lambda: {"score": 0.7}, 1).success
True
>>> ex.execute(lambda: {"score": 0.2}, 2).failure_message
'Success criteria not met: score >= 0.5'
"""

from __future__ import annotations
from typing import Any, Callable, Mapping, Optional

from punit.core.errors import SampleExecutionAborted
from punit.core.names import ExceptionPolicy
from punit.runtime.aggregator import SampleOutcome
from punit.spec.criteria import SuccessCriteria


class SampleExecutor:
    def __init__(
        self,
        exception_policy: ExceptionPolicy = ExceptionPolicy.FAIL_SAMPLE,
        criteria: Optional[SuccessCriteria] = None,
    ) -> None:
        self.exception_policy = exception_policy
        self.criteria = criteria

    def execute(self, body: Callable[[], Any], sample_index: int) -> SampleOutcome:
        try:
            result = body()
        except AssertionError as exc:
            return SampleOutcome.failed(exc)
        except Exception as exc:
            if self.exception_policy is ExceptionPolicy.ABORT_TEST:
                raise SampleExecutionAborted(sample_index, exc) from exc
            return SampleOutcome.failed(exc)
        return self._judge(result)

    def _judge(self, result: Any) -> SampleOutcome:
        if result is False:
            return SampleOutcome.failed(AssertionError("Sample returned False"))
        if self.criteria is not None and isinstance(result, Mapping):
            if not self.criteria.evaluate(result):
                return SampleOutcome.failed(
                    AssertionError(f"Success criteria not met: {self.criteria.description}")
                )
        return SampleOutcome.passed()
