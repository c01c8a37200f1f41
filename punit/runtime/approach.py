"""
punit.runtime.approach
======================

Which of the sample-size, confidence and threshold parameters a test pins.

A test chooses exactly one operational approach (see `punit.stats.threshold`):

- ``min_pass_rate``: THRESHOLD_FIRST. Runs with or without baseline data.
- ``confidence`` + ``min_detectable_effect`` + ``power``: CONFIDENCE_FIRST.
- ``confidence`` alone, or nothing at all: SAMPLE_SIZE_FIRST, at 95% when no
  confidence is given.

The last two need baseline data: an inline baseline or a specification with
an empirical basis. Combinations that pin all three quantities, or mix
parameters of two approaches, or give only part of the confidence-first set,
are rejected with `ConfigurationError` before anything runs.

Examples
--------
>>> from punit.runtime.approach import ApproachParameters
>>> ApproachParameters(min_pass_rate=0.9).resolve(has_baseline=False).name
'THRESHOLD_FIRST'
>>> ApproachParameters().resolve(has_baseline=True).name
'SAMPLE_SIZE_FIRST'
>>> ApproachParameters().resolve(has_baseline=False) is None
True
>>> ApproachParameters(min_pass_rate=0.9, confidence=0.95).validate()  # doctest: +ELLIPSIS
Traceback (most recent call last):
...
punit.core.errors.ConfigurationError: Over-specified test: ...
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from punit.core.errors import ConfigurationError
from punit.stats.threshold import OperationalApproach

DEFAULT_CONFIDENCE = 0.95

_APPROACHES_HINT = (
    "Pick one approach: Sample-Size-First (samples + confidence), "
    "Confidence-First (confidence + minDetectableEffect + power) "
    "or Threshold-First (samples + minPassRate)."
)


def _check_open_unit(name: str, value: Optional[float]) -> None:
    if value is not None and not 0.0 < value < 1.0:
        raise ConfigurationError(f"{name} must be in (0, 1), got: {value}")


@dataclass(frozen=True)
class ApproachParameters:
    """The approach-selecting subset of a test's declaration."""

    min_pass_rate: Optional[float] = None
    confidence: Optional[float] = None
    min_detectable_effect: Optional[float] = None
    power: Optional[float] = None

    @property
    def has_power_parameters(self) -> bool:
        return self.min_detectable_effect is not None or self.power is not None

    @property
    def is_confidence_first(self) -> bool:
        return (
            self.confidence is not None
            and self.min_detectable_effect is not None
            and self.power is not None
        )

    @property
    def effective_confidence(self) -> float:
        return self.confidence if self.confidence is not None else DEFAULT_CONFIDENCE

    def missing_confidence_first(self) -> List[str]:
        names = {
            "confidence": self.confidence,
            "minDetectableEffect": self.min_detectable_effect,
            "power": self.power,
        }
        return [name for name, value in names.items() if value is None]

    def validate(self) -> None:
        """Reject parameter sets that do not select exactly one approach.

        Raises:
            ConfigurationError: over-specified, conflicting or incomplete
                parameters, or a value outside its range
        """
        if self.min_pass_rate is not None and not 0.0 <= self.min_pass_rate <= 1.0:
            raise ConfigurationError(
                f"minPassRate must be in [0, 1], got: {self.min_pass_rate}"
            )
        _check_open_unit("confidence", self.confidence)
        _check_open_unit("minDetectableEffect", self.min_detectable_effect)
        _check_open_unit("power", self.power)

        if self.min_pass_rate is not None and self.confidence is not None:
            raise ConfigurationError(
                "Over-specified test: samples, confidence and minPassRate are all "
                f"pinned (confidence = {self.confidence}, "
                f"minPassRate = {self.min_pass_rate}). {_APPROACHES_HINT}"
            )
        if self.min_pass_rate is not None and self.has_power_parameters:
            raise ConfigurationError(
                "Conflicting approaches: Threshold-First (minPassRate) combined "
                "with Confidence-First parameters (minDetectableEffect, power). "
                f"{_APPROACHES_HINT}"
            )
        if self.has_power_parameters and not self.is_confidence_first:
            missing = ", ".join(self.missing_confidence_first())
            raise ConfigurationError(
                "Incomplete Confidence-First approach: confidence, "
                f"minDetectableEffect and power must be given together (missing: {missing})"
            )

    def resolve(self, has_baseline: bool) -> Optional[OperationalApproach]:
        """The selected approach, or None when nothing is pinned and no
        baseline data is available.

        Raises:
            ConfigurationError: the parameters are invalid, or the approach
                derives from baseline data and there is none
        """
        self.validate()
        if self.min_pass_rate is not None:
            return OperationalApproach.THRESHOLD_FIRST
        if self.is_confidence_first:
            approach = OperationalApproach.CONFIDENCE_FIRST
        elif self.confidence is not None or has_baseline:
            approach = OperationalApproach.SAMPLE_SIZE_FIRST
        else:
            return None
        if not has_baseline:
            raise ConfigurationError(
                f"{approach.value} requires baseline data: give baseline_rate and "
                "baseline_samples, or a specification with an empirical basis. "
                "Without baseline data only Threshold-First (minPassRate) applies."
            )
        return approach
