"""
punit.core.ledger
=================

Backend-agnostic run ledger.

A probabilistic test run is a timeline of events: sample outcomes, token
charges, budget exhaustion and the final termination/verdict signals. The
ledger records each one as an immutable `Row`; readers query rows by
namespace, kind, entity or tag. Concrete storage lives in
`punit.backends` (see `punit.backends.polars.ledger`).

- `Row`: one immutable ledger record
- `LedgerReader`: read-only typed query interface
- `LedgerBase`: the minimal write/read contract a backend implements
- `PayloadRegistry`: per-payload-type decoders applied when reading

Examples
--------
>>> from punit.core.ledger import PayloadRegistry
>>> PayloadRegistry.register("Point", lambda d: (d["x"], d["y"]))
>>> PayloadRegistry.decode("Point", {"x": 1, "y": 2})
(1, 2)
>>> PayloadRegistry.decode("Unknown", {"x": 1})
{'x': 1}
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional, Union

from punit.core.names import Namespace

# Type aliases
NamespaceLike = Union[Namespace, str]
PayloadDecoder = Callable[[Dict[str, Any]], Any]


@dataclass(frozen=True)
class Row:
    """One immutable ledger record."""

    uuid: str
    time_index: str
    ts: datetime
    namespace: str
    kind: str
    entity: str
    snapshot_id: str
    tag: Optional[str]
    payload_type: str
    payload: Any


class PayloadRegistry:
    """Registry of decoders turning stored JSON payloads back into objects."""

    _decoders: Dict[str, PayloadDecoder] = {}

    @classmethod
    def register(cls, payload_type: str, decoder: PayloadDecoder) -> None:
        """Register a decoder for a payload type."""
        cls._decoders[payload_type] = decoder

    @classmethod
    def decode(cls, payload_type: str, payload: Dict[str, Any]) -> Any:
        """Decode with the registered decoder; unknown types stay plain dicts."""
        decoder = cls._decoders.get(payload_type)
        return decoder(payload) if decoder is not None else payload


class LedgerReader(ABC):
    """Read-only typed query interface over ledger rows."""

    @abstractmethod
    def iter_rows(
        self,
        *,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        entity: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Iterator[Row]:
        """Iterate matching rows in append order."""

    @abstractmethod
    def latest(
        self,
        *,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        entity: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Optional[Row]:
        """Return the most recently appended matching row, if any."""

    @abstractmethod
    def count(self, **filters: Any) -> int:
        """Count matching rows."""


class LedgerBase(ABC):
    """Minimal append-only contract implemented by storage backends."""

    @abstractmethod
    def append(
        self,
        *,
        time_index: str,
        ts: datetime,
        namespace: NamespaceLike,
        kind: str,
        entity: str,
        snapshot_id: str,
        payload_type: str,
        payload: Dict[str, Any],
        tag: Optional[str] = None,
    ) -> "LedgerBase":
        """Append one record."""

    @abstractmethod
    def emit_signal(
        self,
        *,
        time_index: str,
        ts: datetime,
        entity: str,
        snapshot_id: str,
        topic: str,
        body: Dict[str, Any],
        tag: str = "signal",
        namespace: NamespaceLike = Namespace.SIGNALS,
        kind: str = "emitted",
    ) -> "LedgerBase":
        """Append a signal record (payload type ``Signal``)."""

    @abstractmethod
    def reader(self) -> LedgerReader:
        """Return a reader over the current contents."""


def namespace_value(namespace: NamespaceLike) -> str:
    """Plain string form of a namespace."""
    return namespace.value if isinstance(namespace, Namespace) else str(namespace)
