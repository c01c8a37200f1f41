"""
punit: statistical test execution for non-deterministic software.

A single call to an LLM-backed service cannot be judged pass/fail on its own.
punit runs a bounded sequence of samples, treats every sample as a Bernoulli
outcome and decides after each one whether continuing is still informative.
Runs are bounded by time and token budgets at method, class and suite scope,
and the pass-rate threshold they must clear is either given explicitly or
derived from an empirical baseline stored as a tamper-evident YAML
specification.

Baselines are matched to the current run by footprint (use case, factors and
declared covariate names) and then by covariate values: CONFIGURATION
covariates must agree exactly, the others rank the candidates.

Every sample outcome, token charge and termination can optionally be appended
to a run ledger, so a run can be recounted after the fact.

Example
-------
>>> import punit
>>> assert hasattr(punit, "runtime")
>>> assert hasattr(punit, "spec")
"""

from punit import baseline, budget, core, covariates, runtime, spec, stats

__version__ = "0.1.0"

__all__ = ["baseline", "budget", "core", "covariates", "runtime", "spec", "stats"]
