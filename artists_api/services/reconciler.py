"""
Regional reconciliation: decide how the local mirror catches up with upstream.

The reconciler is pure. It compares the authoritative list fetched from the
external source against every local row (active and superseded) and returns
a plan of inserts and deactivations. Persisting the plan, stamping
timestamps and transaction boundaries belong to the caller.

Per external identity the mirror is a small state machine:

    no-row --insert--> active --deactivate--> superseded
                         ^                        |
                         +------insert (new row)--+

Each identity is modelled as a `RegionalHistory` with an explicit `current`
pointer, so "at most one active row" is checked while the history is built
rather than by scanning flags afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Tuple


class RegionalSyncError(Exception):
    """Base class for regional synchronization failures."""


class DataIntegrityViolation(RegionalSyncError):
    """The local mirror breaks the one-active-row-per-external-id invariant."""


class LocalRow(Protocol):
    """What the reconciler reads from a persisted mirror row."""

    id: Optional[int]
    external_id: str
    name: str
    is_active: bool


@dataclass(frozen=True)
class RegionalRecord:
    """A regional as published by the external source."""

    external_id: str
    name: str

    @property
    def fingerprint(self) -> Tuple[str, ...]:
        # Every mirrored attribute; any difference means replace
        return (self.name,)


def row_fingerprint(row: LocalRow) -> Tuple[str, ...]:
    return (row.name,)


@dataclass(frozen=True)
class ReconciliationPlan:
    to_insert: Tuple[RegionalRecord, ...] = ()
    to_deactivate: frozenset = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.to_insert and not self.to_deactivate


@dataclass
class RegionalHistory:
    """All local rows for one external id, plus the row currently live."""

    external_id: str
    rows: List[LocalRow] = field(default_factory=list)
    current: Optional[LocalRow] = None

    def add(self, row: LocalRow) -> None:
        if row.is_active:
            if self.current is not None:
                raise DataIntegrityViolation(
                    f"external_id={self.external_id!r} has more than one active row "
                    f"(ids {self.current.id} and {row.id})"
                )
            self.current = row
        self.rows.append(row)

    @property
    def state(self) -> str:
        if self.current is not None:
            return "active"
        return "superseded" if self.rows else "no-row"


def build_histories(local: Iterable[LocalRow]) -> Dict[str, RegionalHistory]:
    """Group local rows by external id; raises DataIntegrityViolation."""
    histories: Dict[str, RegionalHistory] = {}
    for row in local:
        history = histories.get(row.external_id)
        if history is None:
            history = histories[row.external_id] = RegionalHistory(row.external_id)
        history.add(row)
    return histories


def _latest_by_external_id(
    external: Iterable[RegionalRecord],
) -> Dict[str, RegionalRecord]:
    # Duplicate ids: last occurrence wins, first position is kept
    latest: Dict[str, RegionalRecord] = {}
    for record in external:
        latest[record.external_id] = record
    return latest


def reconcile(
    external: Iterable[RegionalRecord],
    local: Iterable[LocalRow],
) -> ReconciliationPlan:
    """
    Compute the inserts and deactivations that bring `local` in line
    with `external`.

    - new:       no active row for the external id   -> insert
    - unchanged: active row with equal fingerprint    -> nothing
    - changed:   active row with other fingerprint    -> deactivate + insert
    - removed:   active row absent from `external`    -> deactivate

    An empty `external` therefore deactivates every active row.

    Raises:
        DataIntegrityViolation: `local` holds two active rows for one
        external id. No partial plan is returned.
    """
    histories = build_histories(local)
    latest = _latest_by_external_id(external)

    to_insert: List[RegionalRecord] = []
    to_deactivate: set = set()

    for external_id, record in latest.items():
        history = histories.get(external_id)
        current = history.current if history is not None else None

        if current is None:
            to_insert.append(record)
        elif row_fingerprint(current) != record.fingerprint:
            to_deactivate.add(current.id)
            to_insert.append(record)

    for external_id, history in histories.items():
        if history.current is not None and external_id not in latest:
            to_deactivate.add(history.current.id)

    return ReconciliationPlan(
        to_insert=tuple(to_insert),
        to_deactivate=frozenset(to_deactivate),
    )
