"""
punit.core.names
================

Typed names shared across the package.

- `Namespace`: an Enum for well-known run-ledger namespaces.
- `TerminationReason`: why a sample sequence stopped.
- `BudgetScope`, `BudgetExhaustedBehavior`, `TokenMode`, `ExceptionPolicy`:
  small policy enums consumed by the budget and runtime layers.
- `UseCaseId`, `Footprint`, `CovariateKey`: NewType wrappers for clarity.

Examples
--------
>>> from punit.core.names import Namespace, TerminationReason
>>> Namespace.SAMPLES.value
'samples'
>>> TerminationReason.IMPOSSIBILITY.is_early_termination()
True
>>> TerminationReason.SUITE_TOKEN_BUDGET_EXHAUSTED.scope
<BudgetScope.SUITE: 'suite'>
>>> TerminationReason.COMPLETED.description
'All samples completed'
"""

from __future__ import annotations
from enum import Enum
from typing import Literal, NewType, Optional


class Namespace(str, Enum):
    """Well-known ledger namespaces.

    - SAMPLES: raw sample outcomes
    - BUDGET: token charges and budget exhaustion
    - SIGNALS: emitted terminations / verdicts
    """

    SAMPLES = "samples"
    BUDGET = "budget"
    SIGNALS = "signals"


class BudgetScope(str, Enum):
    """Granularity at which time/token limits are tracked.

    GLOBAL is the process-wide limit held by the global cost accumulator.
    """

    METHOD = "method"
    CLASS = "class"
    SUITE = "suite"
    GLOBAL = "global"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class BudgetExhaustedBehavior(str, Enum):
    """What happens to the verdict when a budget runs out."""

    FAIL = "FAIL"
    EVALUATE_PARTIAL = "EVALUATE_PARTIAL"

    @classmethod
    def parse(cls, raw: str) -> "BudgetExhaustedBehavior":
        """Case-insensitive lookup by name; raises ValueError when unknown."""
        return cls[raw.strip().upper()]


class TokenMode(str, Enum):
    """How tokens are charged against a method budget."""

    NONE = "NONE"
    STATIC = "STATIC"
    DYNAMIC = "DYNAMIC"


class ExceptionPolicy(str, Enum):
    """What a non-assertion exception raised by a sample body does to the run."""

    FAIL_SAMPLE = "FAIL_SAMPLE"
    ABORT_TEST = "ABORT_TEST"


class TerminationReason(Enum):
    """Why a sample sequence stopped.

    Each member carries a human description and, for budget exhaustion, the
    scope that ran out.
    """

    COMPLETED = ("All samples completed", None)
    IMPOSSIBILITY = ("Cannot reach required pass rate", None)
    SUCCESS_GUARANTEED = ("Required pass rate already achieved", None)
    METHOD_TIME_BUDGET_EXHAUSTED = ("Method time budget exhausted", BudgetScope.METHOD)
    METHOD_TOKEN_BUDGET_EXHAUSTED = ("Method token budget exhausted", BudgetScope.METHOD)
    CLASS_TIME_BUDGET_EXHAUSTED = ("Class time budget exhausted", BudgetScope.CLASS)
    CLASS_TOKEN_BUDGET_EXHAUSTED = ("Class token budget exhausted", BudgetScope.CLASS)
    SUITE_TIME_BUDGET_EXHAUSTED = ("Suite time budget exhausted", BudgetScope.SUITE)
    SUITE_TOKEN_BUDGET_EXHAUSTED = ("Suite token budget exhausted", BudgetScope.SUITE)
    GLOBAL_TIME_BUDGET_EXHAUSTED = ("Global time budget exhausted", BudgetScope.GLOBAL)
    GLOBAL_TOKEN_BUDGET_EXHAUSTED = ("Global token budget exhausted", BudgetScope.GLOBAL)

    def __init__(self, description: str, scope: Optional[BudgetScope]) -> None:
        self.description = description
        self.scope = scope

    def is_early_termination(self) -> bool:
        return self is not TerminationReason.COMPLETED

    def is_budget_exhaustion(self) -> bool:
        return self.scope is not None

    def is_time_budget_exhaustion(self) -> bool:
        return self.scope is not None and "_TIME_" in self.name

    def is_token_budget_exhaustion(self) -> bool:
        return self.scope is not None and "_TOKEN_" in self.name

    @classmethod
    def time_exhausted(cls, scope: BudgetScope) -> "TerminationReason":
        return cls[f"{scope.name}_TIME_BUDGET_EXHAUSTED"]

    @classmethod
    def token_exhausted(cls, scope: BudgetScope) -> "TerminationReason":
        return cls[f"{scope.name}_TOKEN_BUDGET_EXHAUSTED"]


# Typed aliases for logical identifiers (thin wrappers over str).
UseCaseId = NewType("UseCaseId", str)
Footprint = NewType("Footprint", str)
CovariateKey = NewType("CovariateKey", str)

# Ledger event kinds.
SampleKind = Literal["sample:success", "sample:failure"]
BudgetKind = Literal["budget:tokens", "budget:exhausted"]
SignalTopic = Literal["terminated", "verdict"]
