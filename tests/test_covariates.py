"""
Unit tests for covariate declarations, profiles, matchers and resolution.
"""

from __future__ import annotations

from datetime import datetime, time, timezone

import pytest
from structlog.testing import capture_logs

from punit.covariates.matchers import (
    CovariateMatcherRegistry,
    ExactStringMatcher,
    MatchResult,
    TimeOfDayMatcher,
)
from punit.covariates.model import (
    UNDEFINED,
    CovariateCategory,
    CovariateDeclaration,
    CovariateProfile,
    CovariateValue,
    StandardCovariate,
    StringValue,
    TimeWindowValue,
)
from punit.covariates.resolvers import (
    CovariateProfileResolver,
    CovariateSources,
    ResolutionContext,
    env_key_for,
)

# Saturday 17 October 2026, 12:00 UTC
SATURDAY_NOON = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
# Wednesday 14 October 2026, 09:30 UTC
WEDNESDAY_MORNING = datetime(2026, 10, 14, 9, 30, tzinfo=timezone.utc)


def make_context(**kwargs) -> ResolutionContext:
    kwargs.setdefault("now", SATURDAY_NOON)
    kwargs.setdefault("timezone", "UTC")
    kwargs.setdefault("environ", {})
    return ResolutionContext(**kwargs)


def window(text: str) -> TimeWindowValue:
    return TimeWindowValue.parse(text)


# ─── Categories and declarations ─────────────────────────────────────────────


class TestCategories:
    def test_only_configuration_is_a_hard_gate(self):
        gates = [c for c in CovariateCategory if c.is_hard_gate()]
        assert gates == [CovariateCategory.CONFIGURATION]

    def test_informational_is_ignored(self):
        assert CovariateCategory.INFORMATIONAL.is_ignored_in_matching()
        assert not CovariateCategory.INFORMATIONAL.is_soft_match()

    @pytest.mark.parametrize(
        "category",
        ["TEMPORAL", "EXTERNAL_DEPENDENCY", "INFRASTRUCTURE", "DATA_STATE", "OPERATIONAL"],
    )
    def test_soft_categories(self, category):
        assert CovariateCategory(category).is_soft_match()


class TestDeclaration:
    def test_key_order_and_categories(self):
        decl = CovariateDeclaration.of(
            standard=[StandardCovariate.TIME_OF_DAY, StandardCovariate.REGION],
            legacy_custom=["cluster"],
            categorized={"model": CovariateCategory.CONFIGURATION},
        )
        assert decl.all_keys() == ["time_of_day", "region", "cluster", "model"]
        assert decl.get_category("time_of_day") is CovariateCategory.TEMPORAL
        assert decl.get_category("cluster") is CovariateCategory.INFRASTRUCTURE
        assert decl.get_category("model") is CovariateCategory.CONFIGURATION
        assert decl.size() == 4

    def test_declaration_hash_is_stable_and_order_sensitive(self):
        a = CovariateDeclaration.of(legacy_custom=["x", "y"])
        b = CovariateDeclaration.of(legacy_custom=["x", "y"])
        c = CovariateDeclaration.of(legacy_custom=["y", "x"])
        assert a.compute_declaration_hash() == b.compute_declaration_hash()
        assert a.compute_declaration_hash() != c.compute_declaration_hash()
        assert len(a.compute_declaration_hash()) == 8

    def test_empty_declaration(self):
        assert CovariateDeclaration.EMPTY.is_empty()
        assert CovariateDeclaration.EMPTY.compute_declaration_hash() == ""


# ─── Values and profiles ─────────────────────────────────────────────────────


class TestTimeWindowValue:
    def test_truncates_to_minute(self):
        value = TimeWindowValue(time(9, 15, 42), time(10, 0, 5), "Europe/Zurich")
        assert value.canonical() == "09:15-10:00 Europe/Zurich"

    @pytest.mark.parametrize(
        "text",
        ["09:00-17:00", "09:00 UTC", "9am-5pm UTC", "09:00-17:00 Mars/Olympus"],
    )
    def test_rejects_malformed_text(self, text):
        with pytest.raises(ValueError):
            TimeWindowValue.parse(text)

    def test_value_of_restores_time_windows(self):
        assert isinstance(CovariateValue.of("time_of_day", "09:00-17:00 UTC"), TimeWindowValue)
        assert isinstance(CovariateValue.of("time_of_day", UNDEFINED), StringValue)
        assert isinstance(CovariateValue.of("region", "09:00-17:00 UTC"), StringValue)


class TestCovariateProfile:
    def test_builder_keeps_first_insertion_order(self):
        profile = (
            CovariateProfile.builder()
            .put("b", "1")
            .put("a", "2")
            .put("b", "3")
            .build()
        )
        assert profile.ordered_keys == ("b", "a")
        assert profile.as_canonical_dict() == {"b": "3", "a": "2"}

    def test_hashes_follow_values(self):
        p1 = CovariateProfile.from_mapping({"model": "gpt-4"})
        p2 = CovariateProfile.from_mapping({"model": "gpt-4"})
        p3 = CovariateProfile.from_mapping({"model": "gpt-3.5"})
        assert p1.compute_hash() == p2.compute_hash()
        assert p1.compute_hash() != p3.compute_hash()
        assert p1.compute_value_hashes() != p3.compute_value_hashes()
        assert p1.compute_key_hashes() == p3.compute_key_hashes()

    def test_empty_profile_has_empty_hash(self):
        assert CovariateProfile.empty().compute_hash() == ""
        assert CovariateProfile.empty().compute_value_hashes() == []

    def test_put_rejects_none(self):
        with pytest.raises(ValueError):
            CovariateProfile.builder().put("k", None)


# ─── Matchers ────────────────────────────────────────────────────────────────


class TestExactStringMatcher:
    def test_equal_and_different(self):
        matcher = ExactStringMatcher()
        assert matcher.match(StringValue("EU"), StringValue("EU")) is MatchResult.CONFORMS
        assert matcher.match(StringValue("EU"), StringValue("eu")) is MatchResult.DOES_NOT_CONFORM

    def test_case_insensitive(self):
        matcher = ExactStringMatcher(case_sensitive=False)
        assert matcher.match(StringValue("EU"), StringValue("eu")) is MatchResult.CONFORMS

    def test_undefined_never_conforms(self):
        undefined = StringValue(UNDEFINED)
        assert ExactStringMatcher().match(undefined, undefined) is MatchResult.DOES_NOT_CONFORM


class TestTimeOfDayMatcher:
    matcher = TimeOfDayMatcher()

    @pytest.mark.parametrize(
        "baseline, test, expected",
        [
            ("09:00-17:00 UTC", "12:00-12:00 UTC", MatchResult.CONFORMS),
            ("09:00-17:00 UTC", "17:20-17:20 UTC", MatchResult.CONFORMS),
            ("09:00-17:00 UTC", "17:40-17:40 UTC", MatchResult.DOES_NOT_CONFORM),
            ("09:00-17:00 UTC", "16:00-19:00 UTC", MatchResult.PARTIALLY_CONFORMS),
            ("09:00-17:00 UTC", "08:00-18:00 UTC", MatchResult.PARTIALLY_CONFORMS),
            ("09:00-17:00 UTC", "20:00-22:00 UTC", MatchResult.DOES_NOT_CONFORM),
            ("22:00-06:00 UTC", "02:00-02:00 UTC", MatchResult.CONFORMS),
            ("22:00-06:00 UTC", "23:30-01:00 UTC", MatchResult.CONFORMS),
            ("22:00-06:00 UTC", "12:00-12:00 UTC", MatchResult.DOES_NOT_CONFORM),
        ],
    )
    def test_window_containment(self, baseline, test, expected):
        assert self.matcher.match(window(baseline), window(test)) is expected

    def test_differing_timezones_do_not_conform(self):
        result = self.matcher.match(
            window("09:00-17:00 UTC"), window("12:00-12:00 Europe/Zurich")
        )
        assert result is MatchResult.DOES_NOT_CONFORM

    def test_non_window_baseline_does_not_conform(self):
        result = self.matcher.match(StringValue("morning"), window("12:00-12:00 UTC"))
        assert result is MatchResult.DOES_NOT_CONFORM

    def test_undefined_test_value_does_not_conform(self):
        result = self.matcher.match(window("09:00-17:00 UTC"), StringValue(UNDEFINED))
        assert result is MatchResult.DOES_NOT_CONFORM

    def test_textual_test_value_is_parsed(self):
        result = self.matcher.match(window("09:00-17:00 UTC"), StringValue("10:00-11:00 UTC"))
        assert result is MatchResult.CONFORMS


class TestMatcherRegistry:
    def test_region_is_case_insensitive(self):
        registry = CovariateMatcherRegistry.with_standard_matchers()
        assert registry.match("region", StringValue("EU"), StringValue("eu")) is MatchResult.CONFORMS

    def test_unknown_keys_use_exact_matching(self):
        registry = CovariateMatcherRegistry.with_standard_matchers()
        assert isinstance(registry.get_matcher("model"), ExactStringMatcher)
        assert registry.match("model", StringValue("a"), StringValue("b")) is (
            MatchResult.DOES_NOT_CONFORM
        )


# ─── Resolution ──────────────────────────────────────────────────────────────


class TestStandardResolvers:
    def test_weekday_vs_weekend(self):
        decl = CovariateDeclaration.of(standard=[StandardCovariate.WEEKDAY_VERSUS_WEEKEND])
        resolver = CovariateProfileResolver()
        weekend = resolver.resolve(decl, make_context())
        weekday = resolver.resolve(decl, make_context(now=WEDNESDAY_MORNING))
        assert weekend.as_canonical_dict() == {"weekday_vs_weekend": "Sa-So"}
        assert weekday.as_canonical_dict() == {"weekday_vs_weekend": "Mo-Fr"}

    def test_time_of_day_uses_experiment_window(self):
        decl = CovariateDeclaration.of(standard=[StandardCovariate.TIME_OF_DAY])
        context = make_context(
            experiment_start=datetime(2026, 10, 14, 8, 0, tzinfo=timezone.utc),
            experiment_end=datetime(2026, 10, 14, 10, 30, tzinfo=timezone.utc),
            timezone="Europe/Zurich",
        )
        profile = CovariateProfileResolver().resolve(decl, context)
        assert profile.as_canonical_dict() == {"time_of_day": "10:00-12:30 Europe/Zurich"}

    def test_time_of_day_point_in_time(self):
        decl = CovariateDeclaration.of(standard=[StandardCovariate.TIME_OF_DAY])
        profile = CovariateProfileResolver().resolve(decl, make_context())
        assert profile.as_canonical_dict() == {"time_of_day": "12:00-12:00 UTC"}

    def test_region_from_property_then_environment(self):
        decl = CovariateDeclaration.of(standard=[StandardCovariate.REGION])
        resolver = CovariateProfileResolver()
        from_env = resolver.resolve(decl, make_context(environ={"PUNIT_REGION": "US"}))
        from_prop = resolver.resolve(
            decl,
            make_context(environ={"PUNIT_REGION": "US"}, properties={"punit.region": "EU"}),
        )
        missing = resolver.resolve(decl, make_context())
        assert from_env.as_canonical_dict() == {"region": "US"}
        assert from_prop.as_canonical_dict() == {"region": "EU"}
        assert missing.as_canonical_dict() == {"region": UNDEFINED}


class TestResolutionPrecedence:
    decl = CovariateDeclaration.of(categorized={"model": CovariateCategory.CONFIGURATION})

    def test_source_wins_over_overrides(self):
        sources = CovariateSources()
        sources.register("model", lambda: "gpt-4")
        context = make_context(
            sources=sources,
            properties={"punit.covariate.model": "prop"},
            environ={"PUNIT_COVARIATE_MODEL": "env"},
        )
        profile = CovariateProfileResolver().resolve(self.decl, context)
        assert profile.as_canonical_dict() == {"model": "gpt-4"}

    def test_property_wins_over_environment(self):
        context = make_context(
            properties={"punit.covariate.model": "prop"},
            environ={"PUNIT_COVARIATE_MODEL": "env"},
        )
        assert CovariateProfileResolver().resolve(self.decl, context).as_canonical_dict() == {
            "model": "prop"
        }

    def test_environment_then_run_environment_map(self):
        resolver = CovariateProfileResolver()
        env = make_context(environ={"PUNIT_COVARIATE_MODEL": "env"})
        mapped = make_context(punit_environment={"model": "mapped"})
        assert resolver.resolve(self.decl, env).as_canonical_dict() == {"model": "env"}
        assert resolver.resolve(self.decl, mapped).as_canonical_dict() == {"model": "mapped"}

    def test_failing_source_falls_through_with_warning(self):
        sources = CovariateSources()

        @sources.register("model")
        def broken():
            raise RuntimeError("no model configured")

        context = make_context(sources=sources, environ={"PUNIT_COVARIATE_MODEL": "env"})
        with capture_logs() as logs:
            profile = CovariateProfileResolver().resolve(self.decl, context)
        assert profile.as_canonical_dict() == {"model": "env"}
        assert logs[0]["event"] == "covariate_source_failed"
        assert logs[0]["log_level"] == "warning"

    def test_source_returning_none_falls_through(self):
        sources = CovariateSources()
        sources.register("model", lambda: None)
        profile = CovariateProfileResolver().resolve(self.decl, make_context(sources=sources))
        assert profile.as_canonical_dict() == {"model": UNDEFINED}

    def test_empty_declaration_resolves_to_empty_profile(self):
        assert CovariateProfileResolver().resolve(
            CovariateDeclaration.EMPTY, make_context()
        ).is_empty()

    @pytest.mark.parametrize(
        "key, env",
        [("model", "PUNIT_COVARIATE_MODEL"), ("llm.tier-name", "PUNIT_COVARIATE_LLM_TIER_NAME")],
    )
    def test_env_key_for(self, key, env):
        assert env_key_for(key) == env
