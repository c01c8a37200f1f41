"""
punit.covariates.model
======================

Covariate model: categories, values, declarations and resolved profiles.

A *declaration* states which environmental factors matter for a use case and
how strictly each must match between a baseline and a test run (its
category). A *profile* holds the values resolved for one run, in declaration
order, together with canonical-string hashes used in baseline filenames.

Examples
--------
>>> from punit.covariates.model import CovariateProfile, TimeWindowValue
>>> p = CovariateProfile.builder().put("model", "gpt-4").put("region", "EU").build()
>>> p.ordered_keys
('model', 'region')
>>> len(p.compute_hash()), [len(h) for h in p.compute_value_hashes()]
(8, [4, 4])
>>> TimeWindowValue.parse("09:00-17:00 UTC").canonical()
'09:00-17:00 UTC'
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import ClassVar, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from punit.core.hashing import short_hash

UNDEFINED = "UNDEFINED"


class CovariateCategory(str, Enum):
    """How a covariate participates in baseline selection.

    - CONFIGURATION: hard gate; must conform exactly
    - INFORMATIONAL: recorded for traceability only
    - everything else: soft match, used to rank candidates
    """

    TEMPORAL = "TEMPORAL"
    CONFIGURATION = "CONFIGURATION"
    EXTERNAL_DEPENDENCY = "EXTERNAL_DEPENDENCY"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    DATA_STATE = "DATA_STATE"
    OPERATIONAL = "OPERATIONAL"
    INFORMATIONAL = "INFORMATIONAL"

    def is_hard_gate(self) -> bool:
        return self is CovariateCategory.CONFIGURATION

    def is_ignored_in_matching(self) -> bool:
        return self is CovariateCategory.INFORMATIONAL

    def is_soft_match(self) -> bool:
        return not (self.is_hard_gate() or self.is_ignored_in_matching())


class StandardCovariate(Enum):
    """Covariates the engine knows how to resolve and match out of the box."""

    WEEKDAY_VERSUS_WEEKEND = ("weekday_vs_weekend", CovariateCategory.TEMPORAL)
    TIME_OF_DAY = ("time_of_day", CovariateCategory.TEMPORAL)
    TIMEZONE = ("timezone", CovariateCategory.INFRASTRUCTURE)
    REGION = ("region", CovariateCategory.INFRASTRUCTURE)

    def __init__(self, key: str, category: CovariateCategory) -> None:
        self.key = key
        self.category = category

    @classmethod
    def for_key(cls, key: str) -> Optional["StandardCovariate"]:
        for member in cls:
            if member.key == key:
                return member
        return None


# ---- values ----


class CovariateValue(ABC):
    """A resolved covariate value with a stable canonical string form."""

    @abstractmethod
    def canonical(self) -> str:
        ...

    def is_undefined(self) -> bool:
        return self.canonical() == UNDEFINED

    @staticmethod
    def of(key: str, text: str) -> "CovariateValue":
        """Rebuild a value from its canonical text (time windows for time_of_day)."""
        if key == StandardCovariate.TIME_OF_DAY.key and text != UNDEFINED:
            try:
                return TimeWindowValue.parse(text)
            except ValueError:
                return StringValue(text)
        return StringValue(text)


@dataclass(frozen=True)
class StringValue(CovariateValue):
    value: str

    def canonical(self) -> str:
        return self.value


@dataclass(frozen=True)
class TimeWindowValue(CovariateValue):
    """A time-of-day window ``HH:MM-HH:MM Zone``, truncated to the minute.

    A window whose start equals its end is a point in time; a window whose
    end precedes its start wraps past midnight.
    """

    start: time
    end: time
    timezone: str

    def __post_init__(self) -> None:
        if self.start is None or self.end is None or not self.timezone:
            raise ValueError("start, end and timezone are required")
        object.__setattr__(self, "start", _to_minute(self.start))
        object.__setattr__(self, "end", _to_minute(self.end))

    def canonical(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M} {self.timezone}"

    @property
    def start_minute(self) -> int:
        return self.start.hour * 60 + self.start.minute

    @property
    def end_minute(self) -> int:
        return self.end.hour * 60 + self.end.minute

    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def parse(cls, text: str) -> "TimeWindowValue":
        """Parse ``HH:MM-HH:MM Zone``; raises ValueError on any other shape."""
        if text is None:
            raise ValueError("time window text must not be None")
        window, sep, zone = text.strip().partition(" ")
        if not sep or not zone.strip():
            raise ValueError(f"Invalid time window (expected 'HH:MM-HH:MM Zone'): {text!r}")
        start_text, dash, end_text = window.partition("-")
        if not dash:
            raise ValueError(f"Invalid time window (expected 'HH:MM-HH:MM Zone'): {text!r}")
        try:
            ZoneInfo(zone.strip())
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone in time window: {zone!r}") from exc
        return cls(_parse_hhmm(start_text), _parse_hhmm(end_text), zone.strip())


def _to_minute(t: time) -> time:
    return t.replace(second=0, microsecond=0, tzinfo=None)


def _parse_hhmm(text: str) -> time:
    try:
        return time.fromisoformat(text.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid time of day: {text!r}") from exc


# ---- declaration ----


@dataclass(frozen=True)
class CovariateDeclaration:
    """Which covariates a use case declares, and in which order.

    Keys are ordered: standard covariates, then legacy custom keys (which
    predate categories and are treated as INFRASTRUCTURE), then categorized
    custom keys in declaration order.
    """

    standard: Tuple[StandardCovariate, ...] = ()
    legacy_custom: Tuple[str, ...] = ()
    categorized: Tuple[Tuple[str, CovariateCategory], ...] = ()

    EMPTY: ClassVar["CovariateDeclaration"]

    @classmethod
    def of(
        cls,
        standard: Sequence[StandardCovariate] = (),
        legacy_custom: Sequence[str] = (),
        categorized: Optional[Mapping[str, CovariateCategory]] = None,
    ) -> "CovariateDeclaration":
        return cls(
            tuple(standard),
            tuple(legacy_custom),
            tuple((categorized or {}).items()),
        )

    def all_keys(self) -> List[str]:
        keys = [sc.key for sc in self.standard]
        keys.extend(self.legacy_custom)
        keys.extend(key for key, _ in self.categorized)
        return keys

    def get_category(self, key: str) -> CovariateCategory:
        for sc in self.standard:
            if sc.key == key:
                return sc.category
        for name, category in self.categorized:
            if name == key:
                return category
        # Legacy and unknown keys
        return CovariateCategory.INFRASTRUCTURE

    def compute_declaration_hash(self) -> str:
        if self.is_empty():
            return ""
        return short_hash("".join(f"{key}\n" for key in self.all_keys()), 8)

    def is_empty(self) -> bool:
        return not (self.standard or self.legacy_custom or self.categorized)

    def size(self) -> int:
        return len(self.standard) + len(self.legacy_custom) + len(self.categorized)

    def __iter__(self) -> Iterator[str]:
        return iter(self.all_keys())


CovariateDeclaration.EMPTY = CovariateDeclaration()


# ---- profile ----


@dataclass(frozen=True)
class CovariateProfile:
    """Resolved covariate values for one run, in declaration order."""

    ordered_keys: Tuple[str, ...] = ()
    values: Mapping[str, CovariateValue] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "CovariateProfile":
        return cls()

    @classmethod
    def builder(cls) -> "CovariateProfileBuilder":
        return CovariateProfileBuilder()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "CovariateProfile":
        """Rebuild a profile from stored canonical strings (YAML order kept)."""
        builder = cls.builder()
        for key, text in mapping.items():
            builder.put(str(key), CovariateValue.of(str(key), str(text)))
        return builder.build()

    def get(self, key: str) -> Optional[CovariateValue]:
        return self.values.get(key)

    def is_empty(self) -> bool:
        return not self.values

    def size(self) -> int:
        return len(self.values)

    def as_canonical_dict(self) -> Dict[str, str]:
        return {key: self.values[key].canonical() for key in self.ordered_keys}

    def compute_hash(self) -> str:
        if not self.values:
            return ""
        text = "".join(
            f"{key}={self.values[key].canonical()}\n" for key in self.ordered_keys
        )
        return short_hash(text, 8)

    def compute_value_hashes(self) -> List[str]:
        return [
            self.compute_single_value_hash(key, self.values[key])
            for key in self.ordered_keys
        ]

    def compute_key_hashes(self) -> List[str]:
        return [short_hash(f"covariate:{key}", 4) for key in self.ordered_keys]

    @staticmethod
    def compute_single_value_hash(key: str, value: CovariateValue) -> str:
        return short_hash(f"{key}={value.canonical()}", 4)


class CovariateProfileBuilder:
    def __init__(self) -> None:
        self._keys: List[str] = []
        self._values: Dict[str, CovariateValue] = {}

    def put(self, key: str, value: Union[CovariateValue, str]) -> "CovariateProfileBuilder":
        if key is None or value is None:
            raise ValueError("key and value must not be None")
        if isinstance(value, str):
            value = StringValue(value)
        if key not in self._values:
            self._keys.append(key)
        self._values[key] = value
        return self

    def build(self) -> CovariateProfile:
        return CovariateProfile(tuple(self._keys), dict(self._values))
