"""
punit.stats.threshold
=====================

Derivation of a test's minimum pass rate from baseline data.

Sample size, confidence and threshold are tied together, so a test pins two
of them and the third follows. Three operational approaches are supported:

- **SAMPLE_SIZE_FIRST**: the threshold is the one-sided Wilson lower bound of
  the baseline rate at the requested confidence. Small or noisy baselines
  therefore produce more forgiving thresholds.
- **CONFIDENCE_FIRST**: the sample count is the smallest one for which a
  one-sided binomial test at the requested confidence detects a drop of
  `min_detectable_effect` from the baseline rate with the requested power;
  the threshold is then derived as in SAMPLE_SIZE_FIRST.
- **THRESHOLD_FIRST**: the threshold is given explicitly and the confidence
  it implies, relative to the baseline, is solved for numerically. Thresholds
  implying less than 80% confidence are flagged as not statistically sound.

Examples
--------
>>> from punit.stats.threshold import derive_sample_size_first, required_samples_for_power
>>> t = derive_sample_size_first(baseline_samples=1000, baseline_successes=950,
...                              test_samples=100, confidence=0.95)
>>> t.approach.name, 0.93 < t.value < 0.95
('SAMPLE_SIZE_FIRST', True)
>>> required_samples_for_power(0.95, 0.05, confidence=0.95, power=0.80).samples
150
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from scipy.optimize import brentq
from scipy.stats import norm

from punit.core.errors import ConfigurationError
from punit.stats.proportion import wilson_lower_bound

# Implied confidence at or above which an explicit threshold is considered sound.
SOUND_CONFIDENCE = 0.80


class OperationalApproach(str, Enum):
    SAMPLE_SIZE_FIRST = "SAMPLE_SIZE_FIRST"
    CONFIDENCE_FIRST = "CONFIDENCE_FIRST"
    THRESHOLD_FIRST = "THRESHOLD_FIRST"


@dataclass(frozen=True)
class DerivationContext:
    baseline_rate: float
    baseline_samples: int
    test_samples: int
    confidence: float


@dataclass(frozen=True)
class SampleSizeRequirement:
    """Outcome of a power analysis for a one-sided binomial test."""

    samples: int
    confidence: float
    power: float
    min_detectable_effect: float
    null_rate: float
    alternative_rate: float


@dataclass(frozen=True)
class DerivedThreshold:
    """A pass-rate threshold together with how it was obtained."""

    value: float
    approach: OperationalApproach
    context: DerivationContext
    is_statistically_sound: bool = True
    requirement: Optional[SampleSizeRequirement] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.value <= 1.0:
            raise ConfigurationError(
                f"Threshold value must be in [0, 1], got: {self.value}"
            )

    def gap_from_baseline(self) -> float:
        return self.context.baseline_rate - self.value


def _validate(
    baseline_samples: int, baseline_successes: int, test_samples: int
) -> None:
    if baseline_samples <= 0:
        raise ConfigurationError(
            f"Baseline samples must be positive, got: {baseline_samples}"
        )
    if not 0 <= baseline_successes <= baseline_samples:
        raise ConfigurationError(
            f"Baseline successes must be in [0, {baseline_samples}], "
            f"got: {baseline_successes}"
        )
    if test_samples <= 0:
        raise ConfigurationError(f"Test samples must be positive, got: {test_samples}")


def derive_sample_size_first(
    baseline_samples: int,
    baseline_successes: int,
    test_samples: int,
    confidence: float = 0.95,
) -> DerivedThreshold:
    """Threshold = one-sided Wilson lower bound of the baseline rate."""
    _validate(baseline_samples, baseline_successes, test_samples)
    if not 0.0 < confidence < 1.0:
        raise ConfigurationError(f"Confidence must be in (0, 1), got: {confidence}")
    value = wilson_lower_bound(baseline_successes, baseline_samples, confidence)
    context = DerivationContext(
        baseline_successes / baseline_samples, baseline_samples, test_samples, confidence
    )
    return DerivedThreshold(value, OperationalApproach.SAMPLE_SIZE_FIRST, context)


def derive_threshold_first(
    baseline_samples: int,
    baseline_successes: int,
    test_samples: int,
    threshold: float,
) -> DerivedThreshold:
    """Keep an explicit threshold and report the confidence it implies."""
    _validate(baseline_samples, baseline_successes, test_samples)
    if not 0.0 <= threshold <= 1.0:
        raise ConfigurationError(
            f"Explicit threshold must be in [0, 1], got: {threshold}"
        )
    implied = implied_confidence(baseline_successes, baseline_samples, threshold)
    context = DerivationContext(
        baseline_successes / baseline_samples, baseline_samples, test_samples, implied
    )
    return DerivedThreshold(
        threshold,
        OperationalApproach.THRESHOLD_FIRST,
        context,
        is_statistically_sound=implied >= SOUND_CONFIDENCE,
    )


def implied_confidence(successes: int, trials: int, threshold: float) -> float:
    """Confidence level whose one-sided Wilson lower bound equals `threshold`.

    The lower bound decreases monotonically with confidence, so the root is
    bracketed below 0.5 when the threshold is at or above the observed rate
    and above 0.5 otherwise. Unbracketed targets clamp to the nearer end.
    """
    p_hat = successes / trials
    lo, hi = (0.01, 0.5) if threshold >= p_hat else (0.5, 0.9999999)

    def gap(confidence: float) -> float:
        return wilson_lower_bound(successes, trials, confidence) - threshold

    gap_lo, gap_hi = gap(lo), gap(hi)
    if gap_lo == 0.0:
        return lo
    if gap_hi == 0.0:
        return hi
    if gap_lo * gap_hi > 0:
        return lo if abs(gap_lo) < abs(gap_hi) else hi
    return float(brentq(gap, lo, hi, xtol=1e-7))


# ---- power analysis ----


def _open_unit(name: str, value: float) -> None:
    if not 0.0 < value < 1.0:
        raise ConfigurationError(f"{name} must be in (0, 1), got: {value}")


def _rates(baseline_rate: float, min_detectable_effect: float):
    alternative = baseline_rate - min_detectable_effect
    if alternative < 0.0:
        raise ConfigurationError(
            f"Effect size {min_detectable_effect} exceeds baseline rate {baseline_rate}"
        )
    sigma0 = math.sqrt(baseline_rate * (1.0 - baseline_rate))
    sigma1 = math.sqrt(alternative * (1.0 - alternative))
    return alternative, sigma0, sigma1


def required_samples_for_power(
    baseline_rate: float,
    min_detectable_effect: float,
    confidence: float,
    power: float,
) -> SampleSizeRequirement:
    """
    Smallest sample count detecting a drop of `min_detectable_effect`.

    Normal approximation of a one-sided binomial test of
    ``p0 = baseline_rate`` against ``p1 = baseline_rate - effect``:

        n = ceil(((z_alpha * sigma0 + z_beta * sigma1) / effect) ** 2)

    with ``z_alpha`` and ``z_beta`` the standard normal quantiles of
    `confidence` and `power`.
    """
    _open_unit("Baseline rate", baseline_rate)
    _open_unit("Minimum detectable effect", min_detectable_effect)
    _open_unit("Confidence", confidence)
    _open_unit("Power", power)
    alternative, sigma0, sigma1 = _rates(baseline_rate, min_detectable_effect)
    z_alpha = float(norm.ppf(confidence))
    z_beta = float(norm.ppf(power))
    n = ((z_alpha * sigma0 + z_beta * sigma1) / min_detectable_effect) ** 2
    return SampleSizeRequirement(
        samples=math.ceil(n),
        confidence=confidence,
        power=power,
        min_detectable_effect=min_detectable_effect,
        null_rate=baseline_rate,
        alternative_rate=alternative,
    )


def achieved_power(
    samples: int,
    baseline_rate: float,
    min_detectable_effect: float,
    confidence: float,
) -> float:
    """Power of the one-sided test above when run with `samples` samples."""
    if samples <= 0:
        raise ConfigurationError(f"Sample size must be positive, got: {samples}")
    _, sigma0, sigma1 = _rates(baseline_rate, min_detectable_effect)
    z_alpha = float(norm.ppf(confidence))
    z_beta = (min_detectable_effect * math.sqrt(samples) - z_alpha * sigma0) / sigma1
    return float(norm.cdf(z_beta))


def derive_confidence_first(
    baseline_samples: int,
    baseline_successes: int,
    min_detectable_effect: float,
    confidence: float,
    power: float,
) -> DerivedThreshold:
    """Size the test by power analysis, then take the Wilson lower bound."""
    _validate(baseline_samples, baseline_successes, 1)
    baseline_rate = baseline_successes / baseline_samples
    requirement = required_samples_for_power(
        baseline_rate, min_detectable_effect, confidence, power
    )
    value = wilson_lower_bound(baseline_successes, baseline_samples, confidence)
    context = DerivationContext(
        baseline_rate, baseline_samples, requirement.samples, confidence
    )
    return DerivedThreshold(
        value, OperationalApproach.CONFIDENCE_FIRST, context, requirement=requirement
    )
