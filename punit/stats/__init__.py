"""
punit.stats
===========

The inference needed for one-sided pass-rate testing, and nothing more:

- `early_termination`: exact bounds deciding when more samples cannot change
  the verdict
- `proportion`: Wilson score estimates of a binomial proportion
- `threshold`: derivation of a minimum pass rate from baseline data

Example
-------
>>> from punit.stats.early_termination import required_successes
>>> required_successes(100, 0.95)
95
"""
