"""
punit.core.traits
=================

Run-ledger DSL mixed into any `LedgerBase` backend.

A backend only implements `append`, `emit_signal` and `reader`. `LedgerOps`
adds the vocabulary a probabilistic test run is written in:

- `record_sample()`, `record_token_charge()`, `record_budget_exhausted()`
- `signal()` for the ``terminated`` and ``verdict`` signals
- `write_event()` / `emit()` for anything else
- `latest()`, `iter_ns()`, `sum_fields()` and `tokens_consumed()` on the way out

Rows of one run share the run id as their entity; the step key is the
number of samples executed when the row was written.

Examples
--------
>>> from punit.backends.polars.ledger import PolarsLedger
>>> from punit.core.names import Namespace
>>> L = PolarsLedger()
>>> L.record_token_charge("run#1", 1, 120)
>>> L.record_token_charge("run#1", 2, 80)
>>> L.tokens_consumed("run#1")
200
>>> L.signal("run#1", 2, "terminated", {"reason": "COMPLETED"})
>>> L.latest(namespace=Namespace.SIGNALS).payload["body"]
{'reason': 'COMPLETED'}
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from punit.core.ledger import LedgerBase, NamespaceLike, Row, namespace_value
from punit.core.names import Namespace, UseCaseId

StepKey = Union[int, str]


class LedgerOps(LedgerBase):
    """Typed writers and readers for the events of a probabilistic test run."""

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # ---- run events ----

    def record_sample(self, run_id: str, record: Any) -> None:
        """Append one sample outcome; `record` is a `SampleRecord`."""
        self.write_event(
            time_index=record.index,
            namespace=Namespace.SAMPLES,
            kind="sample:success" if record.success else "sample:failure",
            run_id=run_id,
            step_key=record.index,
            payload_type="SampleRecord",
            payload=record.to_payload(),
        )

    def record_token_charge(self, run_id: str, step: StepKey, tokens: int) -> None:
        self.write_event(
            time_index=step,
            namespace=Namespace.BUDGET,
            kind="budget:tokens",
            run_id=run_id,
            step_key=step,
            payload_type="TokenCharge",
            payload={"tokens": tokens},
        )

    def record_budget_exhausted(
        self,
        run_id: str,
        step: StepKey,
        *,
        reason: str,
        behavior: str,
        details: Optional[str] = None,
    ) -> None:
        self.write_event(
            time_index=step,
            namespace=Namespace.BUDGET,
            kind="budget:exhausted",
            run_id=run_id,
            step_key=step,
            payload_type="BudgetExhausted",
            payload={"reason": reason, "behavior": behavior, "details": details},
        )

    def signal(self, run_id: str, step: StepKey, topic: str, body: Dict[str, Any]) -> None:
        """Append a run-level signal such as ``terminated`` or ``verdict``."""
        self.emit(time_index=step, run_id=run_id, step_key=step, topic=topic, body=body)

    # ---- generic writers ----

    def write_event(
        self,
        *,
        time_index: StepKey,
        namespace: NamespaceLike,
        kind: str,
        run_id: Union[UseCaseId, str],
        step_key: StepKey,
        payload_type: str,
        payload: Dict[str, Any],
        tag: Optional[str] = None,
        ts: Optional[datetime] = None,
    ) -> None:
        self.append(
            time_index=str(time_index),
            ts=ts or self._now(),
            namespace=namespace_value(namespace),
            kind=kind,
            entity=str(run_id),
            snapshot_id=str(step_key),
            payload_type=payload_type,
            payload=payload,
            tag=tag,
        )

    def emit(
        self,
        *,
        time_index: StepKey,
        run_id: Union[UseCaseId, str],
        step_key: StepKey,
        topic: str,
        body: Dict[str, Any],
        tag: str = "signal",
        namespace: NamespaceLike = Namespace.SIGNALS,
        ts: Optional[datetime] = None,
    ) -> None:
        self.emit_signal(
            time_index=str(time_index),
            ts=ts or self._now(),
            entity=str(run_id),
            snapshot_id=str(step_key),
            topic=topic,
            body=body,
            tag=tag,
            namespace=namespace_value(namespace),
        )

    # ---- readers ----

    def latest(
        self,
        *,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        run_id: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Optional[Row]:
        return self.reader().latest(
            namespace=namespace,
            kind=kind,
            entity=run_id or None,
            tag=tag,
        )

    def iter_ns(
        self,
        *,
        namespace: NamespaceLike,
        run_id: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> Iterable[Row]:
        return self.reader().iter_rows(namespace=namespace, kind=kind, entity=run_id or None)

    def sum_fields(
        self,
        *,
        run_id: str,
        field_names: List[str],
        namespace: NamespaceLike,
        kind: Optional[str] = None,
    ) -> Dict[str, Union[int, float]]:
        """
        Sum numeric payload fields over one run's rows.

        Decoded payload objects are read by attribute, plain dict payloads by
        key. Booleans, missing and non-numeric values contribute nothing.
        """
        totals: Dict[str, Union[int, float]] = dict.fromkeys(field_names, 0)
        for row in self.iter_ns(namespace=namespace, run_id=run_id, kind=kind):
            payload = row.payload
            for name in field_names:
                if isinstance(payload, dict):
                    value = payload.get(name)
                else:
                    value = getattr(payload, name, None)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    totals[name] += value
        return totals

    def tokens_consumed(self, run_id: str) -> int:
        """Tokens charged to one run, from its ``budget:tokens`` rows."""
        totals = self.sum_fields(
            run_id=run_id, field_names=["tokens"], namespace=Namespace.BUDGET, kind="budget:tokens"
        )
        return int(totals["tokens"])
