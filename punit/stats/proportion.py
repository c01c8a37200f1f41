"""
punit.stats.proportion
======================

Binomial proportion estimation.

Provides the Wilson score interval used to turn a baseline's observed
successes into a conservative pass-rate threshold. Wilson is preferred over
the Wald interval because it stays inside [0, 1] and behaves well for rates
near 1, which is where well-behaved systems under test live.

Examples
--------
>>> from punit.stats.proportion import wilson_lower_bound, standard_error
>>> 0.89 < wilson_lower_bound(95, 100, 0.95) < 0.91
True
>>> round(standard_error(50, 100), 3)
0.05
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Tuple

from scipy.stats import norm


@dataclass(frozen=True)
class ProportionEstimate:
    """Point estimate with a two-sided confidence interval."""

    point: float
    trials: int
    lower: float
    upper: float
    confidence: float


def _validate_counts(successes: int, trials: int) -> None:
    if trials <= 0:
        raise ValueError(f"Trials must be positive, got: {trials}")
    if successes < 0:
        raise ValueError(f"Successes must be non-negative, got: {successes}")
    if successes > trials:
        raise ValueError(f"Successes ({successes}) cannot exceed trials ({trials})")


def _validate_confidence(confidence: float) -> None:
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"Confidence level must be in (0, 1), got: {confidence}")


def z_one_sided(confidence: float) -> float:
    """z_α for a one-sided bound (≈1.645 at 95%)."""
    _validate_confidence(confidence)
    return float(norm.ppf(confidence))


def z_two_sided(confidence: float) -> float:
    """z_{α/2} for a two-sided interval (≈1.960 at 95%)."""
    _validate_confidence(confidence)
    return float(norm.ppf(1.0 - (1.0 - confidence) / 2.0))


def standard_error(successes: int, trials: int) -> float:
    """Return sqrt(p̂(1-p̂)/n)."""
    _validate_counts(successes, trials)
    p_hat = successes / trials
    return math.sqrt(p_hat * (1.0 - p_hat) / trials)


def _wilson(p_hat: float, n: int, z: float) -> Tuple[float, float]:
    z2 = z * z
    denominator = 1.0 + z2 / n
    center = (p_hat + z2 / (2.0 * n)) / denominator
    margin = z * math.sqrt(p_hat * (1.0 - p_hat) / n + z2 / (4.0 * n * n)) / denominator
    return max(0.0, center - margin), min(1.0, center + margin)


def wilson_interval(
    successes: int, trials: int, confidence: float = 0.95
) -> ProportionEstimate:
    """Two-sided Wilson score interval.

    Args:
        successes: Observed successes
        trials: Observed trials
        confidence: Two-sided confidence level in (0, 1)

    Returns:
        ProportionEstimate with the point estimate and interval bounds
    """
    _validate_counts(successes, trials)
    z = z_two_sided(confidence)
    p_hat = successes / trials
    lower, upper = _wilson(p_hat, trials, z)
    return ProportionEstimate(p_hat, trials, lower, upper, confidence)


def wilson_lower_bound(successes: int, trials: int, confidence: float = 0.95) -> float:
    """One-sided Wilson lower bound at the given confidence."""
    _validate_counts(successes, trials)
    z = z_one_sided(confidence)
    lower, _ = _wilson(successes / trials, trials, z)
    return lower

