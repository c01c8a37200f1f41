"""
punit.backends.polars.ledger
============================

Polars-backed run ledger.

Appends land in a row buffer and are folded into the frame in one
`pl.concat` the next time anything reads, so a run of N samples does not
rebuild the frame N times. Payloads are stored as compact JSON strings and
decoded through `PayloadRegistry` on the way out. Timestamps are kept in UTC.

`samples()` unpacks a run's ``SampleRecord`` payloads into typed columns,
which is the usual starting point for looking at a finished run.

Examples
--------
>>> from punit.backends.polars.ledger import PolarsLedger
>>> from punit.runtime.aggregator import SampleRecord
>>> L = PolarsLedger()
>>> L.record_sample("checkout#1", SampleRecord(1, True, tokens=30))
>>> L.record_sample("checkout#1", SampleRecord(2, False, "wrong total", 45))
>>> L.reader().count(kind="sample:failure")
1
>>> L.samples("checkout#1")["tokens"].to_list()
[30, 45]
"""

from __future__ import annotations
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

import polars as pl

from punit.core.ledger import LedgerReader, NamespaceLike, PayloadRegistry, Row, namespace_value
from punit.core.names import Namespace
from punit.core.traits import LedgerOps

SCHEMA: Dict[str, Any] = {
    "uuid": pl.Utf8,
    "time_index": pl.Utf8,
    "ts": pl.Datetime(time_unit="us", time_zone="UTC"),
    "namespace": pl.Utf8,
    "kind": pl.Utf8,
    "entity": pl.Utf8,
    "snapshot_id": pl.Utf8,
    "tag": pl.Utf8,
    "payload_type": pl.Utf8,
    "payload": pl.Utf8,
}

SAMPLE_STRUCT = pl.Struct(
    {"index": pl.Int64, "success": pl.Boolean, "failure": pl.Utf8, "tokens": pl.Int64}
)


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _to_row(rec: Dict[str, Any]) -> Row:
    payload = json.loads(rec["payload"]) if rec["payload"] else {}
    return Row(
        uuid=rec["uuid"],
        time_index=rec["time_index"],
        ts=rec["ts"],
        namespace=rec["namespace"],
        kind=rec["kind"],
        entity=rec["entity"],
        snapshot_id=rec["snapshot_id"],
        tag=rec["tag"],
        payload_type=rec["payload_type"],
        payload=PayloadRegistry.decode(rec["payload_type"], payload),
    )


class PolarsReader(LedgerReader):
    """Query view over a materialised ledger frame."""

    def __init__(self, df: pl.DataFrame) -> None:
        self.df = df

    def select(
        self,
        *,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        entity: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> pl.DataFrame:
        wanted = {
            "namespace": namespace_value(namespace) if namespace is not None else None,
            "kind": kind,
            "entity": entity,
            "tag": tag,
        }
        predicates = [pl.col(col) == value for col, value in wanted.items() if value is not None]
        return self.df.filter(pl.all_horizontal(predicates)) if predicates else self.df

    def iter_rows(self, **filters: Any) -> Iterator[Row]:
        for rec in self.select(**filters).iter_rows(named=True):
            yield _to_row(rec)

    def latest(self, **filters: Any) -> Optional[Row]:
        matched = self.select(**filters)
        if matched.is_empty():
            return None
        return _to_row(matched.tail(1).row(0, named=True))

    def count(self, **filters: Any) -> int:
        return self.select(**filters).height


class PolarsLedger(LedgerOps):
    """Append-only run ledger held in a Polars DataFrame."""

    def __init__(self, df: Optional[pl.DataFrame] = None) -> None:
        self._df = df if df is not None else pl.DataFrame(schema=SCHEMA)
        self._pending: List[Dict[str, Any]] = []

    def _materialise(self) -> pl.DataFrame:
        if self._pending:
            columns = {name: [rec[name] for rec in self._pending] for name in SCHEMA}
            batch = pl.DataFrame(columns, schema=SCHEMA)
            self._df = pl.concat([self._df, batch], how="vertical_relaxed")
            self._pending = []
        return self._df

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
    ) -> "PolarsLedger":
        self._pending.append(
            {
                "uuid": uuid.uuid4().hex,
                "time_index": time_index,
                "ts": _utc(ts),
                "namespace": namespace_value(namespace),
                "kind": kind,
                "entity": entity,
                "snapshot_id": snapshot_id,
                "tag": tag,
                "payload_type": payload_type,
                "payload": json.dumps(payload, separators=(",", ":"), default=str),
            }
        )
        return self

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
    ) -> "PolarsLedger":
        return self.append(
            time_index=time_index,
            ts=ts,
            namespace=namespace,
            kind=kind,
            entity=entity,
            snapshot_id=snapshot_id,
            payload_type="Signal",
            payload={"topic": topic, "body": body},
            tag=tag,
        )

    def reader(self) -> PolarsReader:
        return PolarsReader(self._materialise())

    def frame(self) -> pl.DataFrame:
        """Copy of every row written so far."""
        return self._materialise().clone()

    def samples(self, run_id: str) -> pl.DataFrame:
        """One row per sample of `run_id`: index, success, failure, tokens."""
        return (
            self.reader()
            .select(namespace=Namespace.SAMPLES, entity=run_id)
            .filter(pl.col("payload_type") == "SampleRecord")
            .select(pl.col("payload").str.json_decode(SAMPLE_STRUCT).alias("sample"))
            .unnest("sample")
        )
