"""
Unit tests for footprints, baseline filenames, the baseline repository and
two-phase baseline selection.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping, Optional

import pytest
from structlog.testing import capture_logs

from punit.baseline.footprint import compute_footprint, footprint_source
from punit.baseline.naming import BaselineFileNamer, sanitize
from punit.baseline.repository import BaselineRepository
from punit.baseline.selection import BaselineCandidate, BaselineSelector
from punit.core.errors import NoCompatibleBaselineError
from punit.covariates.matchers import MatchResult
from punit.covariates.model import (
    CovariateCategory,
    CovariateDeclaration,
    CovariateProfile,
    StandardCovariate,
)
from punit.spec import codec
from punit.spec.model import EmpiricalBasis, ExecutionSpecification

CONFIG_DECL = CovariateDeclaration.of(categorized={"model": CovariateCategory.CONFIGURATION})
SOFT_DECL = CovariateDeclaration.of(
    standard=[StandardCovariate.REGION],
    categorized={
        "tier": CovariateCategory.OPERATIONAL,
        "build": CovariateCategory.INFORMATIONAL,
    },
)


def make_profile(values: Mapping[str, str]) -> CovariateProfile:
    return CovariateProfile.from_mapping(values)


def make_candidate(
    name: str,
    values: Mapping[str, str],
    generated_at: Optional[datetime] = None,
    use_case_id: str = "ShoppingUseCase",
) -> BaselineCandidate:
    profile = make_profile(values)
    spec = ExecutionSpecification(
        use_case_id=use_case_id,
        covariate_profile=profile,
        generated_at=generated_at,
        empirical_basis=EmpiricalBasis(samples=100, successes=95),
    )
    return BaselineCandidate(name, "fp", profile, generated_at, spec)


# ─── Footprint ───────────────────────────────────────────────────────────────


class TestFootprint:
    def test_source_layout(self):
        decl = CovariateDeclaration.of(
            standard=[StandardCovariate.TIME_OF_DAY], legacy_custom=["model"]
        )
        assert footprint_source("Checkout", {"temp": 0.2, "llm": "x"}, decl) == (
            "usecase:Checkout\n"
            "factor:llm=x\n"
            "factor:temp=0.2\n"
            "covariate:time_of_day\n"
            "covariate:model\n"
        )

    def test_factor_order_does_not_matter(self):
        assert compute_footprint("Checkout", {"a": 1, "b": 2}) == compute_footprint(
            "Checkout", {"b": 2, "a": 1}
        )

    def test_factor_value_matters(self):
        assert compute_footprint("Checkout", {"a": 1, "b": 2}) != compute_footprint(
            "Checkout", {"a": 1, "b": 3}
        )

    def test_covariate_names_matter_but_not_values(self):
        with_model = CovariateDeclaration.of(legacy_custom=["model"])
        assert compute_footprint("Checkout") != compute_footprint("Checkout", None, with_model)

    def test_use_case_matters(self):
        assert compute_footprint("Checkout") != compute_footprint("Cart")

    def test_requires_use_case(self):
        with pytest.raises(ValueError):
            compute_footprint(None)


# ─── Filenames ───────────────────────────────────────────────────────────────


class TestBaselineFileNamer:
    namer = BaselineFileNamer()

    def test_sanitize(self):
        assert sanitize("com.acme/Shop Case") == "com_acme_Shop_Case"

    def test_current_form_excludes_informational(self):
        profile = make_profile({"region": "EU", "tier": "gold", "build": "1234"})
        name = self.namer.filename(
            "ShoppingUseCase", "measure", datetime(2026, 1, 10, 14, 5), "a1b2c3d4",
            profile, SOFT_DECL,
        )
        parsed = self.namer.parse(name)
        assert name.startswith("ShoppingUseCase.measure-20260110-1405-a1b2-")
        assert parsed.use_case_name == "ShoppingUseCase"
        assert parsed.footprint_hash == "a1b2"
        assert parsed.covariate_count == 2

    def test_legacy_form_round_trip(self):
        profile = make_profile({"model": "gpt-4"})
        name = self.namer.legacy_filename("Checkout", "a1b2c3d4", profile)
        parsed = self.namer.parse(name)
        assert parsed.use_case_name == "Checkout"
        assert parsed.footprint_hash == "a1b2"
        assert parsed.covariate_hashes == (profile.compute_value_hashes()[0][:4],)

    def test_parse_rejects_single_part(self):
        with pytest.raises(ValueError, match="Invalid baseline filename"):
            self.namer.parse("Checkout.yaml")


# ─── Repository ──────────────────────────────────────────────────────────────


def write_baseline(root, filename, footprint=None, use_case_id="ShoppingUseCase", **values):
    spec = ExecutionSpecification(
        use_case_id=use_case_id,
        footprint=footprint,
        covariate_profile=make_profile(values),
        generated_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
        empirical_basis=EmpiricalBasis(samples=100, successes=90),
    )
    return codec.write(spec, root / filename)


class TestBaselineRepository:
    def test_filters_by_use_case_and_footprint(self, tmp_path):
        write_baseline(tmp_path, "ShoppingUseCase.measure-20260201-1000-aaaa.yaml", "aaaa1111")
        write_baseline(tmp_path, "ShoppingUseCase.measure-20260201-1100-bbbb.yaml", "bbbb2222")
        write_baseline(tmp_path, "ShoppingUseCaseV2-aaaa.yaml", "aaaa1111", "ShoppingUseCaseV2")
        repo = BaselineRepository(tmp_path)

        matching = repo.find_candidates("ShoppingUseCase", "aaaa1111")
        assert [c.filename for c in matching] == [
            "ShoppingUseCase.measure-20260201-1000-aaaa.yaml"
        ]
        assert repo.find_available_footprints("ShoppingUseCase") == ["aaaa1111", "bbbb2222"]

    def test_legacy_baseline_without_footprint(self, tmp_path):
        write_baseline(tmp_path, "ShoppingUseCase-0000.yaml")
        repo = BaselineRepository(tmp_path)
        assert repo.find_candidates("ShoppingUseCase", "aaaa1111") == []
        assert len(repo.find_all_candidates("ShoppingUseCase")) == 1

    def test_corrupt_file_is_skipped_with_warning(self, tmp_path):
        write_baseline(tmp_path, "ShoppingUseCase-good.yaml", "aaaa1111")
        (tmp_path / "ShoppingUseCase-bad.yaml").write_text(
            "schemaVersion: punit-spec-2\nuseCaseId: ShoppingUseCase\n", encoding="utf-8"
        )
        with capture_logs() as logs:
            found = BaselineRepository(tmp_path).find_candidates("ShoppingUseCase", "aaaa1111")
        assert [c.filename for c in found] == ["ShoppingUseCase-good.yaml"]
        skipped = [e for e in logs if e["event"] == "baseline_skipped"]
        assert [e["path"].endswith("ShoppingUseCase-bad.yaml") for e in skipped] == [True]

    def test_missing_directory(self, tmp_path):
        assert BaselineRepository(tmp_path / "absent").find_candidates("ShoppingUseCase") == []


# ─── Selection: hard gate ────────────────────────────────────────────────────


class TestConfigurationGate:
    def test_selects_candidate_with_matching_configuration(self):
        candidates = [
            make_candidate("gpt4.yaml", {"model": "gpt-4"}),
            make_candidate("gpt35.yaml", {"model": "gpt-3.5"}),
        ]
        run = make_profile({"model": "gpt-4"})
        result = BaselineSelector().select(candidates, run, CONFIG_DECL)
        assert result.selected.filename == "gpt4.yaml"
        assert not result.ambiguous
        assert result.candidate_count == 1

    def test_no_matching_configuration_lists_available(self):
        candidates = [
            make_candidate("gpt4.yaml", {"model": "gpt-4"}),
            make_candidate("gpt35.yaml", {"model": "gpt-3.5"}),
        ]
        run = make_profile({"model": "claude"})
        with pytest.raises(NoCompatibleBaselineError) as excinfo:
            BaselineSelector().select(candidates, run, CONFIG_DECL)
        error = excinfo.value
        assert error.is_configuration_mismatch
        assert error.available_footprints == ["model=gpt-4", "model=gpt-3.5"]
        message = str(error)
        assert "Current configuration:\n  model=claude" in message
        assert "  model=gpt-4\n  model=gpt-3.5" in message

    def test_missing_configuration_value_never_conforms(self):
        candidates = [make_candidate("old.yaml", {})]
        with pytest.raises(NoCompatibleBaselineError) as excinfo:
            BaselineSelector().select(candidates, make_profile({"model": "gpt-4"}), CONFIG_DECL)
        assert "model=<not set>" in str(excinfo.value)

    def test_no_candidates_is_no_match(self):
        result = BaselineSelector().select([], CovariateProfile.empty(), CONFIG_DECL)
        assert not result.has_selection()


# ─── Selection: soft ranking ─────────────────────────────────────────────────


class TestSoftRanking:
    run = make_profile({"region": "EU", "tier": "gold", "build": "99"})

    def test_more_matches_wins(self):
        candidates = [
            make_candidate("one.yaml", {"region": "EU", "tier": "silver", "build": "99"}),
            make_candidate("two.yaml", {"region": "eu", "tier": "gold", "build": "1"}),
        ]
        result = BaselineSelector().select(candidates, self.run, SOFT_DECL)
        assert result.selected.filename == "two.yaml"
        assert not result.has_non_conformance()
        assert [d.covariate_key for d in result.conformance_details] == ["region", "tier"]

    def test_earlier_declared_match_breaks_ties(self):
        candidates = [
            make_candidate("tier-only.yaml", {"region": "US", "tier": "gold"}),
            make_candidate("region-only.yaml", {"region": "EU", "tier": "silver"}),
        ]
        result = BaselineSelector().select(candidates, self.run, SOFT_DECL)
        assert result.selected.filename == "region-only.yaml"
        assert [d.result for d in result.non_conforming_details()] == [
            MatchResult.DOES_NOT_CONFORM
        ]

    def test_partial_conformance_beats_none(self):
        decl = CovariateDeclaration.of(standard=[StandardCovariate.TIME_OF_DAY])
        run = make_profile({"time_of_day": "16:00-19:00 UTC"})
        candidates = [
            make_candidate("night.yaml", {"time_of_day": "22:00-02:00 UTC"}),
            make_candidate("office.yaml", {"time_of_day": "09:00-17:00 UTC"}),
        ]
        result = BaselineSelector().select(candidates, run, decl)
        assert result.selected.filename == "office.yaml"
        assert result.conformance_details[0].result is MatchResult.PARTIALLY_CONFORMS

    def test_most_recent_wins_full_tie(self):
        values = {"region": "EU", "tier": "gold"}
        candidates = [
            make_candidate("older.yaml", values, datetime(2026, 1, 1, tzinfo=timezone.utc)),
            make_candidate("newer.yaml", values, datetime(2026, 3, 1, tzinfo=timezone.utc)),
        ]
        result = BaselineSelector().select(candidates, self.run, SOFT_DECL)
        assert result.selected.filename == "newer.yaml"
        assert not result.ambiguous

    def test_full_tie_is_ambiguous(self):
        values = {"region": "EU", "tier": "gold"}
        candidates = [make_candidate("a.yaml", values), make_candidate("b.yaml", values)]
        with capture_logs() as logs:
            result = BaselineSelector().select(candidates, self.run, SOFT_DECL)
        assert result.selected.filename == "a.yaml"
        assert result.ambiguous
        assert logs[0]["event"] == "baseline_selection_ambiguous"
