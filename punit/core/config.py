"""
punit.core.config
=================

Environment-driven settings.

Suite- and global-level budgets and pacing overrides come from two places: an
explicit mapping of dotted *properties* handed over by the host runner
(``punit.suite.tokenBudget``) and the process environment
(``PUNIT_SUITE_TOKEN_BUDGET``). Properties win. Values that fail to parse
fall back to the field default with a warning, so a typo in CI configuration
never aborts the run.

Examples
--------
>>> from punit.core.config import SuiteBudgetSettings
>>> s = SuiteBudgetSettings.from_properties({"punit.suite.tokenBudget": "500"})
>>> s.token_budget
500
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Mapping, Optional

import structlog
from pydantic import ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from punit.core.names import BudgetExhaustedBehavior

logger = structlog.get_logger()


class LoggingConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PUNIT_LOG_", extra="ignore")

    level: str = "INFO"
    format: str = "console"  # "console" | "json"


class _PropertySettings(BaseSettings):
    """Settings fed by host properties first and the environment second.

    Invalid values are replaced by the field default.
    """

    # dotted property name -> field name
    PROPERTY_KEYS: ClassVar[Dict[str, str]] = {}

    @field_validator("*", mode="wrap")
    @classmethod
    def _fallback_to_default(cls, value: Any, handler: Any, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError:
            default = cls.model_fields[info.field_name].default
            logger.warning(
                "invalid_setting_ignored",
                setting=info.field_name,
                value=value,
                default=default,
            )
            return default

    @classmethod
    def from_properties(cls, properties: Optional[Mapping[str, Any]] = None):
        """Build settings; keyword (property) values outrank environment values."""
        values: Dict[str, Any] = {}
        for prop, field in cls.PROPERTY_KEYS.items():
            raw = (properties or {}).get(prop)
            if raw is not None and str(raw).strip():
                values[field] = raw
        return cls(**values)


class SuiteBudgetSettings(_PropertySettings):
    """Suite-wide time/token limits (0 = unlimited)."""

    model_config = SettingsConfigDict(
        env_prefix="PUNIT_SUITE_", env_ignore_empty=True, extra="ignore"
    )

    PROPERTY_KEYS: ClassVar[Dict[str, str]] = {
        "punit.suite.timeBudgetMs": "time_budget_ms",
        "punit.suite.tokenBudget": "token_budget",
        "punit.suite.onBudgetExhausted": "on_budget_exhausted",
    }

    time_budget_ms: int = 0
    token_budget: int = 0
    on_budget_exhausted: BudgetExhaustedBehavior = BudgetExhaustedBehavior.FAIL

    @field_validator("on_budget_exhausted", mode="before")
    @classmethod
    def _normalize_behavior(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    def has_budget(self) -> bool:
        return self.time_budget_ms > 0 or self.token_budget > 0


class GlobalBudgetSettings(_PropertySettings):
    """Process-wide limits observed by the global cost accumulator."""

    model_config = SettingsConfigDict(
        env_prefix="PUNIT_GLOBAL_", env_ignore_empty=True, extra="ignore"
    )

    PROPERTY_KEYS: ClassVar[Dict[str, str]] = {
        "punit.global.timeBudgetMs": "time_budget_ms",
        "punit.global.tokenBudget": "token_budget",
        "punit.global.onBudgetExhausted": "on_budget_exhausted",
        "punit.global.emitSummary": "emit_summary",
    }

    time_budget_ms: int = 0
    token_budget: int = 0
    on_budget_exhausted: BudgetExhaustedBehavior = BudgetExhaustedBehavior.FAIL
    emit_summary: bool = True

    @field_validator("on_budget_exhausted", mode="before")
    @classmethod
    def _normalize_behavior(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class PacingSettings(_PropertySettings):
    """Overrides of a test's declared pacing; unset fields keep the declaration."""

    model_config = SettingsConfigDict(
        env_prefix="PUNIT_PACING_", env_ignore_empty=True, extra="ignore"
    )

    PROPERTY_KEYS: ClassVar[Dict[str, str]] = {
        "punit.pacing.maxRps": "max_rps",
        "punit.pacing.maxRpm": "max_rpm",
        "punit.pacing.maxRph": "max_rph",
        "punit.pacing.minMsPerSample": "min_ms_per_sample",
    }

    max_rps: Optional[float] = None
    max_rpm: Optional[float] = None
    max_rph: Optional[float] = None
    min_ms_per_sample: Optional[int] = None
