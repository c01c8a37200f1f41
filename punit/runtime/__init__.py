"""
punit.runtime
=============

Execution of probabilistic tests.

Key Components
--------------
- `SampleResultAggregator`: running tally of one invocation
- `SampleExecutor`: runs one sample body under the exception policy
- `BernoulliTrialsStrategy`: the per-sample state machine
- `ApproachParameters`: which operational approach a test pins
- `Pacing`: rate limits and the delay slept between samples
- `FinalVerdictDecider`: pass/fail and its explanation
- `ProbabilisticTestRunner`: threshold resolution, baseline selection and
  budget wiring around the strategy
- `BatchRunner`: several tests sharing one class budget

Examples
--------
>>> from punit.runtime.runners import ProbabilisticTest, ProbabilisticTestRunner
>>> verdict = ProbabilisticTestRunner(ProbabilisticTest(samples=10, min_pass_rate=0.8)).run(lambda: False)
>>> verdict.passed, verdict.samples_executed, verdict.termination_reason.name
(False, 3, 'IMPOSSIBILITY')
"""
