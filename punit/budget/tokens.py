"""
punit.budget.tokens
===================

Dynamic token charging.

A sample body that wants its real token usage counted receives a
`TokenChargeRecorder` and calls `record_tokens` as it consumes tokens. The
engine finalizes the per-sample count after each sample and propagates it to
the method, class and suite budgets.

Examples
--------
>>> from punit.budget.tokens import DefaultTokenChargeRecorder
>>> r = DefaultTokenChargeRecorder(token_budget=1000)
>>> r.record_tokens(120); r.record_tokens(30)
>>> r.finalize_sample()
150
>>> r.total_tokens_consumed, r.tokens_for_current_sample, r.remaining_budget()
(150, 0, 850)
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional


class TokenChargeRecorder(ABC):
    """What a sample body sees: a place to report tokens it consumed."""

    @abstractmethod
    def record_tokens(self, tokens: int) -> None:
        """Add tokens to the current sample's charge."""

    @property
    @abstractmethod
    def tokens_for_current_sample(self) -> int:
        ...

    @property
    @abstractmethod
    def total_tokens_consumed(self) -> int:
        ...

    @abstractmethod
    def remaining_budget(self) -> Optional[int]:
        """Tokens left in the method budget, or None when unlimited."""


class DefaultTokenChargeRecorder(TokenChargeRecorder):
    def __init__(self, token_budget: int = 0) -> None:
        self.token_budget = token_budget
        self._current = 0
        self._total = 0

    def record_tokens(self, tokens: int) -> None:
        if tokens < 0:
            raise ValueError(f"Token count must be >= 0, but was: {tokens}")
        self._current += tokens

    @property
    def tokens_for_current_sample(self) -> int:
        return self._current

    @property
    def total_tokens_consumed(self) -> int:
        return self._total

    def remaining_budget(self) -> Optional[int]:
        if self.token_budget <= 0:
            return None
        return max(0, self.token_budget - self._total)

    def finalize_sample(self) -> int:
        """Move the current sample's tokens into the total and return them."""
        sample_tokens = self._current
        self._total += sample_tokens
        self._current = 0
        return sample_tokens

    def reset_for_next_sample(self) -> None:
        self._current = 0
