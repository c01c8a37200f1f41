"""
Unit tests for the YAML specification codec and its integrity checks.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from punit.core.errors import (
    SpecificationIntegrityError,
    SpecificationValidationError,
)
from punit.core.hashing import sha256_hex
from punit.covariates.model import CovariateProfile, TimeWindowValue
from punit.spec import codec
from punit.spec.expiration import ExpirationPolicy
from punit.spec.model import (
    EmpiricalBasis,
    ExecutionSpecification,
    ExecutionSummary,
    Requirements,
    ResultProjection,
)

GENERATED_AT = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def make_baseline() -> ExecutionSpecification:
    profile = (
        CovariateProfile.builder()
        .put("time_of_day", TimeWindowValue.parse("09:00-11:00 UTC"))
        .put("model", "gpt-4")
        .build()
    )
    return ExecutionSpecification(
        use_case_id="ShoppingUseCase",
        generated_at=GENERATED_AT,
        requirements=Requirements(min_pass_rate=0.9, success_criteria="isValid == true"),
        empirical_basis=EmpiricalBasis(samples=1000, successes=951),
        execution=ExecutionSummary(1000, 1000, "COMPLETED"),
        footprint="a1b2c3d4",
        covariate_profile=profile,
        expiration_policy=ExpirationPolicy.of(30, GENERATED_AT),
        success_criteria_definition="isValid == true",
        result_projections=(
            ResultProjection(0, 12, "add milk", {"isValid": "true"}, ("ok", "1 item")),
        ),
    )


def sign(body: str) -> str:
    """Append a correct fingerprint line to hand-written YAML."""
    return f"{body}contentFingerprint: {sha256_hex(body)}\n"


# ─── Writing and reading ─────────────────────────────────────────────────────


class TestRoundTrip:
    def test_fields_survive(self):
        original = make_baseline()
        loaded = codec.loads(codec.dumps(original))

        assert loaded.use_case_id == "ShoppingUseCase"
        assert loaded.generated_at == GENERATED_AT
        assert loaded.requirements == original.requirements
        assert loaded.empirical_basis.samples == 1000
        assert loaded.empirical_basis.successes == 951
        assert loaded.execution == original.execution
        assert loaded.footprint == "a1b2c3d4"
        assert loaded.covariate_profile == original.covariate_profile
        assert loaded.expiration_policy == original.expiration_policy
        assert loaded.result_projections == original.result_projections
        assert loaded.content_fingerprint is not None

    def test_statistics_section_derived_from_basis(self):
        loaded = codec.loads(codec.dumps(make_baseline()))
        stats = loaded.extended_statistics
        assert stats is not None
        assert stats.confidence_interval_lower < 0.951 < stats.confidence_interval_upper

    def test_fingerprint_is_last_line(self):
        text = codec.dumps(make_baseline())
        last = text.splitlines()[-1]
        assert last == f"contentFingerprint: {codec.compute_fingerprint(text)}"

    def test_output_is_deterministic(self):
        assert codec.dumps(make_baseline()) == codec.dumps(make_baseline())

    def test_write_then_load(self, tmp_path):
        path = codec.write(make_baseline(), tmp_path / "nested" / "Shopping.yaml")
        assert path.exists()
        assert codec.load(path).footprint == "a1b2c3d4"


class TestLayouts:
    def test_approved_layout_with_legacy_names(self):
        body = (
            "schemaVersion: punit-spec-1\n"
            "specId: ShoppingUseCase\n"
            "version: 3\n"
            "approvedAt: '2026-02-01T10:00:00Z'\n"
            "approvedBy: qa-lead\n"
            "configuration:\n"
            "  model: gpt-4\n"
            "requirements:\n"
            "  minPassRate: 0.85\n"
            "baselineData:\n"
            "  samples: 200\n"
            "  successes: 180\n"
        )
        spec = codec.loads(sign(body))
        assert spec.use_case_id == "ShoppingUseCase"
        assert spec.version == 3
        assert spec.is_approved()
        assert spec.execution_context == {"model": "gpt-4"}
        assert spec.min_pass_rate == 0.85
        assert (spec.baseline_samples, spec.baseline_successes) == (200, 180)

    def test_baseline_layout_without_empirical_basis(self):
        body = (
            "schemaVersion: punit-spec-2\n"
            "useCaseId: Checkout\n"
            "execution:\n"
            "  samplesPlanned: 100\n"
            "  samplesExecuted: 80\n"
            "  terminationReason: METHOD_TIME_BUDGET_EXHAUSTED\n"
            "statistics:\n"
            "  successes: 72\n"
            "  failures: 8\n"
        )
        spec = codec.loads(sign(body))
        assert (spec.baseline_samples, spec.baseline_successes) == (80, 72)
        assert spec.execution.termination_reason == "METHOD_TIME_BUDGET_EXHAUSTED"

    def test_invalid_rate_rejected_after_integrity(self):
        body = (
            "schemaVersion: punit-spec-2\n"
            "useCaseId: Checkout\n"
            "requirements:\n"
            "  minPassRate: 1.4\n"
        )
        with pytest.raises(SpecificationValidationError):
            codec.loads(sign(body))


# ─── Integrity ───────────────────────────────────────────────────────────────


class TestIntegrity:
    def test_tampered_content_is_rejected(self):
        text = codec.dumps(make_baseline()).replace("successes: 951", "successes: 999")
        with pytest.raises(SpecificationIntegrityError, match="fingerprint mismatch"):
            codec.loads(text)

    def test_missing_fingerprint(self):
        text = codec.dumps(make_baseline())
        unsigned = codec.content_before_fingerprint(text)
        with pytest.raises(SpecificationIntegrityError, match="Missing contentFingerprint"):
            codec.loads(unsigned)

    def test_missing_schema_version(self):
        with pytest.raises(SpecificationIntegrityError, match="Missing schemaVersion"):
            codec.loads(sign("useCaseId: Checkout\n"))

    def test_unsupported_schema_version(self):
        body = "schemaVersion: punit-spec-9\nuseCaseId: Checkout\n"
        with pytest.raises(SpecificationIntegrityError, match="Unsupported schema version"):
            codec.loads(sign(body))

    def test_hashed_region_ends_at_fingerprint_line(self):
        content = "a: 1\ncontentFingerprint: abc\ntrailing: 2\n"
        assert codec.content_before_fingerprint(content) == "a: 1\n"
        assert codec.content_before_fingerprint("a: 1\n") == "a: 1\n"

    def test_indented_key_is_not_the_fingerprint_line(self):
        content = "a:\n  contentFingerprint: nested\n"
        assert codec.content_before_fingerprint(content) == content

    def test_mid_line_mention_does_not_end_hashed_region(self):
        content = (
            "note: 'see contentFingerprint: below'\n"
            "contentFingerprint: abc\n"
        )
        assert codec.content_before_fingerprint(content) == (
            "note: 'see contentFingerprint: below'\n"
        )

    def test_json_files_are_rejected(self, tmp_path):
        path = tmp_path / "Checkout.json"
        path.write_text('{"useCaseId": "Checkout"}', encoding="utf-8")
        with pytest.raises(SpecificationIntegrityError, match="Unsupported file format"):
            codec.load(path)
