"""
punit.covariates.resolvers
==========================

Resolution of the current run's covariate values.

For every declared key the first available source wins:

1. a provider registered for the use case in `CovariateSources`;
2. the property ``punit.covariate.<key>``;
3. the environment variable ``PUNIT_COVARIATE_<KEY>`` (upper-cased, ``-`` and
   ``.`` replaced by ``_``);
4. the resolver registered for the key (standard covariates), or the custom
   resolver, which reads the run's environment map and otherwise yields
   ``UNDEFINED``.

Examples
--------
>>> from datetime import datetime, timezone
>>> from punit.covariates.model import CovariateDeclaration, StandardCovariate, CovariateCategory
>>> from punit.covariates.resolvers import CovariateProfileResolver, ResolutionContext, CovariateSources
>>> sources = CovariateSources()
>>> @sources.register("model")
... def model_name():
...     return "gpt-4"
>>> decl = CovariateDeclaration.of(
...     standard=[StandardCovariate.WEEKDAY_VERSUS_WEEKEND],
...     categorized={"model": CovariateCategory.CONFIGURATION, "tier": CovariateCategory.OPERATIONAL})
>>> ctx = ResolutionContext(now=datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc),
...                         timezone="UTC", sources=sources, environ={})
>>> CovariateProfileResolver().resolve(decl, ctx).as_canonical_dict()
{'weekday_vs_weekend': 'Sa-So', 'model': 'gpt-4', 'tier': 'UNDEFINED'}
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable, Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from punit.covariates.model import (
    UNDEFINED,
    CovariateDeclaration,
    CovariateProfile,
    CovariateValue,
    StandardCovariate,
    StringValue,
    TimeWindowValue,
)

logger = structlog.get_logger()

PROPERTY_PREFIX = "punit.covariate."
ENV_PREFIX = "PUNIT_COVARIATE_"
REGION_PROPERTY = "punit.region"
REGION_ENV = "PUNIT_REGION"

WEEKDAY_LABEL = "Mo-Fr"
WEEKEND_LABEL = "Sa-So"


def default_timezone() -> str:
    """IANA zone from ``TZ`` when valid, else UTC."""
    name = os.environ.get("TZ", "").strip()
    if name:
        try:
            ZoneInfo(name)
            return name
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return "UTC"


class CovariateSources:
    """Explicitly registered covariate providers for one use case.

    Providers are zero-argument callables; register them directly or use the
    instance as a decorator factory.
    """

    def __init__(self) -> None:
        self._providers: Dict[str, Callable[[], Any]] = {}

    def register(self, key: str, provider: Optional[Callable[[], Any]] = None):
        if provider is not None:
            self._providers[key] = provider
            return provider

        def decorator(fn: Callable[[], Any]) -> Callable[[], Any]:
            self._providers[key] = fn
            return fn

        return decorator

    def get(self, key: str) -> Optional[Callable[[], Any]]:
        return self._providers.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._providers


@dataclass(frozen=True)
class ResolutionContext:
    """Everything a resolver may consult; injected so resolution is testable."""

    now: datetime = field(default_factory=lambda: datetime.now(dt_timezone.utc))
    experiment_start: Optional[datetime] = None
    experiment_end: Optional[datetime] = None
    timezone: str = field(default_factory=default_timezone)
    properties: Mapping[str, str] = field(default_factory=dict)
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    punit_environment: Mapping[str, str] = field(default_factory=dict)
    sources: CovariateSources = field(default_factory=CovariateSources)

    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def local(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=dt_timezone.utc)
        return moment.astimezone(self.zone())

    def get_property(self, key: str) -> Optional[str]:
        return _non_blank(self.properties.get(key))

    def get_env(self, key: str) -> Optional[str]:
        return _non_blank(self.environ.get(key))


def _non_blank(value: Optional[str]) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    return str(value)


# ---- resolvers ----


class CovariateResolver(ABC):
    @abstractmethod
    def resolve(self, context: ResolutionContext) -> CovariateValue:
        ...


class WeekdayVsWeekendResolver(CovariateResolver):
    def resolve(self, context: ResolutionContext) -> CovariateValue:
        local = context.local(context.experiment_start or context.now)
        return StringValue(WEEKDAY_LABEL if local.weekday() < 5 else WEEKEND_LABEL)


class TimeOfDayResolver(CovariateResolver):
    """The experiment's start-end window, or the current minute as a point."""

    def resolve(self, context: ResolutionContext) -> CovariateValue:
        start = context.local(context.experiment_start or context.now)
        end = context.local(context.experiment_end) if context.experiment_end else start
        return TimeWindowValue(start.time(), end.time(), context.timezone)


class TimezoneResolver(CovariateResolver):
    def resolve(self, context: ResolutionContext) -> CovariateValue:
        return StringValue(context.timezone)


class RegionResolver(CovariateResolver):
    def resolve(self, context: ResolutionContext) -> CovariateValue:
        region = context.get_property(REGION_PROPERTY) or context.get_env(REGION_ENV)
        return StringValue(region if region is not None else UNDEFINED)


class CustomCovariateResolver(CovariateResolver):
    """Reads a custom key from the run's environment map."""

    def __init__(self, key: str) -> None:
        self.key = key

    def resolve(self, context: ResolutionContext) -> CovariateValue:
        value = _non_blank(context.punit_environment.get(self.key))
        return StringValue(value if value is not None else UNDEFINED)


class CovariateResolverRegistry:
    def __init__(self, resolvers: Optional[Mapping[str, CovariateResolver]] = None) -> None:
        self._resolvers: Dict[str, CovariateResolver] = dict(resolvers or {})

    @classmethod
    def with_standard_resolvers(cls) -> "CovariateResolverRegistry":
        return cls(
            {
                StandardCovariate.WEEKDAY_VERSUS_WEEKEND.key: WeekdayVsWeekendResolver(),
                StandardCovariate.TIME_OF_DAY.key: TimeOfDayResolver(),
                StandardCovariate.TIMEZONE.key: TimezoneResolver(),
                StandardCovariate.REGION.key: RegionResolver(),
            }
        )

    def register(self, key: str, resolver: CovariateResolver) -> None:
        self._resolvers[key] = resolver

    def has_resolver(self, key: str) -> bool:
        return key in self._resolvers

    def get_resolver(self, key: str) -> CovariateResolver:
        return self._resolvers.get(key) or CustomCovariateResolver(key)


def env_key_for(key: str) -> str:
    return ENV_PREFIX + key.upper().replace("-", "_").replace(".", "_")


class CovariateProfileResolver:
    """Resolves a declaration into a profile for the current run."""

    def __init__(self, registry: Optional[CovariateResolverRegistry] = None) -> None:
        self.registry = registry or CovariateResolverRegistry.with_standard_resolvers()

    def resolve(
        self, declaration: CovariateDeclaration, context: ResolutionContext
    ) -> CovariateProfile:
        if declaration.is_empty():
            return CovariateProfile.empty()
        builder = CovariateProfile.builder()
        for key in declaration.all_keys():
            builder.put(key, self.resolve_value(key, context))
        return builder.build()

    def resolve_value(self, key: str, context: ResolutionContext) -> CovariateValue:
        provider = context.sources.get(key)
        if provider is not None:
            try:
                result = provider()
            except Exception as exc:
                logger.warning(
                    "covariate_source_failed", key=key, error=f"{type(exc).__name__}: {exc}"
                )
            else:
                if result is not None:
                    return _to_value(result)

        override = context.get_property(PROPERTY_PREFIX + key)
        if override is None:
            override = context.get_env(env_key_for(key))
        if override is not None:
            return CovariateValue.of(key, override)

        return self.registry.get_resolver(key).resolve(context)


def _to_value(result: Any) -> CovariateValue:
    if isinstance(result, CovariateValue):
        return result
    return StringValue(str(result))
