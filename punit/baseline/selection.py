"""
punit.baseline.selection
========================

Two-phase selection of the baseline that applies to the current run.

Phase 1 (hard gate)
    Every CONFIGURATION covariate must CONFORM between candidate and run.
    When no candidate survives, `NoCompatibleBaselineError` lists the
    configurations that are available.

Phase 2 (soft ranking)
    Survivors are scored by how many non-INFORMATIONAL covariates conform
    (CONFIGURATION counts as conforming). Ties are broken by the conformance
    at each declared position, left to right, then by the most recent
    ``generated_at``. When the two best candidates remain fully tied the
    result is flagged ``ambiguous``.

INFORMATIONAL covariates never take part in gating or scoring.

Examples
--------
>>> from punit.baseline.selection import BaselineCandidate, BaselineSelector
>>> from punit.covariates.model import CovariateCategory, CovariateDeclaration, CovariateProfile
>>> from punit.spec.model import ExecutionSpecification
>>> decl = CovariateDeclaration.of(categorized={"model": CovariateCategory.CONFIGURATION})
>>> def candidate(name, model):
...     profile = CovariateProfile.builder().put("model", model).build()
...     return BaselineCandidate(name, "fp", profile, None,
...                              ExecutionSpecification("Checkout", covariate_profile=profile))
>>> run = CovariateProfile.builder().put("model", "gpt-4").build()
>>> result = BaselineSelector().select([candidate("a", "gpt-4"), candidate("b", "gpt-3.5")], run, decl)
>>> result.selected.filename, result.ambiguous
('a', False)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from functools import cmp_to_key
from typing import List, Optional, Sequence, Tuple

import structlog

from punit.core.errors import NoCompatibleBaselineError
from punit.covariates.matchers import CovariateMatcherRegistry, MatchResult
from punit.covariates.model import (
    CovariateCategory,
    CovariateDeclaration,
    CovariateProfile,
    CovariateValue,
    StringValue,
)
from punit.spec.model import ExecutionSpecification

logger = structlog.get_logger()

NOT_SET = "<not set>"
MISSING = "<missing>"


@dataclass(frozen=True)
class BaselineCandidate:
    """One stored specification considered during selection."""

    filename: str
    footprint: str
    covariate_profile: CovariateProfile
    generated_at: Optional[datetime]
    spec: ExecutionSpecification


@dataclass(frozen=True)
class ConformanceDetail:
    covariate_key: str
    baseline_value: CovariateValue
    test_value: CovariateValue
    result: MatchResult


@dataclass(frozen=True)
class SelectionResult:
    selected: Optional[BaselineCandidate]
    conformance_details: Tuple[ConformanceDetail, ...] = ()
    ambiguous: bool = False
    candidate_count: int = 0

    @classmethod
    def no_match(cls) -> "SelectionResult":
        return cls(None)

    def has_selection(self) -> bool:
        return self.selected is not None

    def non_conforming_details(self) -> List[ConformanceDetail]:
        return [d for d in self.conformance_details if d.result is not MatchResult.CONFORMS]

    def has_non_conformance(self) -> bool:
        return bool(self.non_conforming_details())


@dataclass(frozen=True)
class _Scored:
    candidate: BaselineCandidate
    match_count: int
    details: Tuple[ConformanceDetail, ...] = field(default=())


class BaselineSelector:
    def __init__(self, matchers: Optional[CovariateMatcherRegistry] = None) -> None:
        self.matchers = matchers or CovariateMatcherRegistry.with_standard_matchers()

    def select(
        self,
        candidates: Sequence[BaselineCandidate],
        test_profile: CovariateProfile,
        declaration: CovariateDeclaration,
    ) -> SelectionResult:
        if not candidates:
            return SelectionResult.no_match()

        config_keys = [
            key
            for key in declaration.all_keys()
            if declaration.get_category(key) is CovariateCategory.CONFIGURATION
        ]
        survivors: Sequence[BaselineCandidate] = candidates
        if config_keys:
            survivors = [
                c for c in candidates
                if self._conforms_on(c.covariate_profile, test_profile, config_keys)
            ]
            if not survivors:
                raise self._configuration_mismatch(candidates, test_profile, config_keys)

        scored = sorted(
            (self._score(c, test_profile, declaration) for c in survivors),
            key=cmp_to_key(_compare),
        )
        best = scored[0]
        ambiguous = len(scored) > 1 and _compare(scored[0], scored[1]) == 0
        result = SelectionResult(best.candidate, best.details, ambiguous, len(scored))
        if ambiguous:
            logger.warning(
                "baseline_selection_ambiguous",
                selected=best.candidate.filename,
                tied_with=scored[1].candidate.filename,
                candidates=len(scored),
            )
        else:
            logger.debug(
                "baseline_selected",
                selected=best.candidate.filename,
                match_count=best.match_count,
                candidates=len(scored),
            )
        return result

    def _conforms_on(
        self, baseline: CovariateProfile, test: CovariateProfile, keys: Sequence[str]
    ) -> bool:
        for key in keys:
            baseline_value, test_value = baseline.get(key), test.get(key)
            if baseline_value is None or test_value is None:
                return False
            if self.matchers.match(key, baseline_value, test_value) is not MatchResult.CONFORMS:
                return False
        return True

    @staticmethod
    def _signature(profile: CovariateProfile, keys: Sequence[str]) -> str:
        pairs = []
        for key in keys:
            value = profile.get(key)
            pairs.append(f"{key}={value.canonical() if value is not None else NOT_SET}")
        return " ".join(pairs)

    def _configuration_mismatch(
        self,
        candidates: Sequence[BaselineCandidate],
        test_profile: CovariateProfile,
        keys: Sequence[str],
    ) -> NoCompatibleBaselineError:
        available: List[str] = []
        for candidate in candidates:
            signature = self._signature(candidate.covariate_profile, keys)
            if signature not in available:
                available.append(signature)
        current = self._signature(test_profile, keys)
        logger.warning(
            "baseline_configuration_mismatch", current=current, available=available
        )
        return NoCompatibleBaselineError.configuration_mismatch(
            candidates[0].spec.use_case_id, current, available
        )

    def _score(
        self,
        candidate: BaselineCandidate,
        test: CovariateProfile,
        declaration: CovariateDeclaration,
    ) -> _Scored:
        details: List[ConformanceDetail] = []
        matches = 0
        for key in declaration.all_keys():
            category = declaration.get_category(key)
            if category.is_ignored_in_matching():
                continue
            baseline_value = candidate.covariate_profile.get(key)
            test_value = test.get(key)
            if category.is_hard_gate():
                result = MatchResult.CONFORMS
            elif baseline_value is None or test_value is None:
                result = MatchResult.DOES_NOT_CONFORM
            else:
                result = self.matchers.match(key, baseline_value, test_value)
            details.append(
                ConformanceDetail(
                    key,
                    baseline_value if baseline_value is not None else StringValue(MISSING),
                    test_value if test_value is not None else StringValue(MISSING),
                    result,
                )
            )
            if result is MatchResult.CONFORMS:
                matches += 1
        return _Scored(candidate, matches, tuple(details))


def _compare(a: _Scored, b: _Scored) -> int:
    """Negative when `a` ranks ahead of `b`."""
    if a.match_count != b.match_count:
        return b.match_count - a.match_count
    for left, right in zip(a.details, b.details):
        if left.result is not right.result:
            return left.result.rank - right.result.rank
    a_time, b_time = a.candidate.generated_at, b.candidate.generated_at
    if a_time is not None and b_time is not None and a_time != b_time:
        return -1 if a_time > b_time else 1
    return 0
