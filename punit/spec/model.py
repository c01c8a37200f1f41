"""
punit.spec.model
================

Immutable model of a stored specification.

A specification is either a *baseline*, written by a MEASURE experiment and
describing what was observed, or an *approved spec*, a human-reviewed
contract derived from baselines. Both share one model; which sections are
present depends on where the record came from.

- `Requirements`: minimum pass rate and success-criteria expression
- `EmpiricalBasis`: raw samples/successes used to derive thresholds at runtime
- `CostEnvelope`, `ExtendedStatistics`, `ExecutionSummary`, `ResultProjection`
- `ExecutionSpecification`: the record itself

Examples
--------
>>> from punit.spec.model import ExecutionSpecification, EmpiricalBasis, Requirements
>>> spec = ExecutionSpecification(
...     use_case_id="ShoppingUseCase",
...     requirements=Requirements(min_pass_rate=0.9),
...     empirical_basis=EmpiricalBasis(samples=200, successes=190))
>>> spec.has_empirical_basis(), spec.get_empirical_basis_rate()
(True, 0.95)
>>> spec.validate()
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

from punit.core.errors import SpecificationValidationError
from punit.covariates.model import CovariateProfile
from punit.spec.criteria import SuccessCriteria
from punit.spec.expiration import ExpirationPolicy

CURRENT_SCHEMA_VERSION = "punit-spec-2"


@dataclass(frozen=True)
class Requirements:
    min_pass_rate: float = 1.0
    success_criteria: str = ""


@dataclass(frozen=True)
class CostEnvelope:
    max_time_per_sample_ms: int = 0
    max_tokens_per_sample: int = 0
    total_token_budget: int = 0


@dataclass(frozen=True)
class EmpiricalBasis:
    """Observed outcomes of the baseline experiment."""

    samples: int
    successes: int
    generated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.samples < 0:
            raise SpecificationValidationError("samples must be non-negative")
        if self.successes < 0:
            raise SpecificationValidationError("successes must be non-negative")
        if self.successes > self.samples:
            raise SpecificationValidationError("successes cannot exceed samples")

    def observed_rate(self) -> float:
        return self.successes / self.samples if self.samples else 0.0


@dataclass(frozen=True)
class ExtendedStatistics:
    standard_error: float = 0.0
    confidence_interval_lower: float = 0.0
    confidence_interval_upper: float = 0.0
    failure_distribution: Mapping[str, int] = field(default_factory=dict)
    total_time_ms: int = 0
    avg_time_per_sample_ms: int = 0
    total_tokens: int = 0
    avg_tokens_per_sample: int = 0


@dataclass(frozen=True)
class ExecutionSummary:
    """How the baseline experiment's own sample sequence ended."""

    samples_planned: int = 0
    samples_executed: int = 0
    termination_reason: Optional[str] = None
    termination_details: Optional[str] = None


@dataclass(frozen=True)
class ResultProjection:
    """Diff-friendly view of one recorded sample."""

    sample_index: int
    execution_time_ms: int = 0
    input: Optional[str] = None
    postconditions: Mapping[str, str] = field(default_factory=dict)
    diffable_content: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ExecutionSpecification:
    use_case_id: str
    spec_id: Optional[str] = None
    version: int = 1
    schema_version: str = CURRENT_SCHEMA_VERSION
    generated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approval_notes: Optional[str] = None
    source_baselines: Tuple[str, ...] = ()
    execution_context: Mapping[str, Any] = field(default_factory=dict)
    requirements: Requirements = field(default_factory=Requirements)
    cost_envelope: Optional[CostEnvelope] = None
    empirical_basis: Optional[EmpiricalBasis] = None
    extended_statistics: Optional[ExtendedStatistics] = None
    execution: Optional[ExecutionSummary] = None
    footprint: Optional[str] = None
    covariate_profile: CovariateProfile = field(default_factory=CovariateProfile.empty)
    expiration_policy: Optional[ExpirationPolicy] = None
    success_criteria_definition: Optional[str] = None
    result_projections: Tuple[ResultProjection, ...] = ()
    content_fingerprint: Optional[str] = None

    @property
    def id(self) -> str:
        return self.spec_id or self.use_case_id

    @property
    def min_pass_rate(self) -> float:
        return self.requirements.min_pass_rate

    @property
    def success_criteria(self) -> SuccessCriteria:
        return SuccessCriteria.parse(self.requirements.success_criteria)

    def has_empirical_basis(self) -> bool:
        return self.empirical_basis is not None and self.empirical_basis.samples > 0

    def get_empirical_basis_rate(self) -> float:
        return self.empirical_basis.observed_rate() if self.empirical_basis else 0.0

    @property
    def baseline_samples(self) -> int:
        return self.empirical_basis.samples if self.empirical_basis else 0

    @property
    def baseline_successes(self) -> int:
        return self.empirical_basis.successes if self.empirical_basis else 0

    def has_expiration_policy(self) -> bool:
        return self.expiration_policy is not None and self.expiration_policy.has_expiration()

    def has_footprint(self) -> bool:
        return bool(self.footprint)

    def has_covariates(self) -> bool:
        return not self.covariate_profile.is_empty()

    def is_approved(self) -> bool:
        return self.approved_at is not None and bool(self.approved_by)

    def validate(self, require_approval: bool = False) -> None:
        """Raise `SpecificationValidationError` when a model constraint is violated."""
        if not 0.0 <= self.requirements.min_pass_rate <= 1.0:
            raise SpecificationValidationError(
                f"Specification '{self.id}' has invalid minPassRate: "
                f"{self.requirements.min_pass_rate}"
            )
        if require_approval and not self.is_approved():
            raise SpecificationValidationError(
                f"Specification '{self.id}' lacks approval metadata. Add 'approvedAt', "
                "'approvedBy', and 'approvalNotes' to the specification file."
            )
        if self.execution is not None and (
            self.execution.samples_executed > self.execution.samples_planned > 0
        ):
            raise SpecificationValidationError(
                f"Specification '{self.id}' executed more samples "
                f"({self.execution.samples_executed}) than planned "
                f"({self.execution.samples_planned})"
            )
