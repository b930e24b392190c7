# Session-bound persistence for the regional mirror. Never deletes rows.
from __future__ import annotations

from typing import List, Tuple

from sqlmodel import Session, select

from artists_api.db.models.regional import Regional, utcnow
from artists_api.services.reconciler import DataIntegrityViolation, ReconciliationPlan


class RegionalStore:
    """
    Reads and writes `regionals` through a caller-owned session.

    `apply_plan` only flushes; the caller commits or rolls back, so the
    load and the writes of one sync run share a single transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def load_active_and_history(self) -> List[Regional]:
        return list(self.session.exec(select(Regional).order_by(Regional.id)).all())

    def apply_plan(self, plan: ReconciliationPlan) -> Tuple[int, int]:
        """
        Deactivate then insert, returning (inserted, deactivated).

        Deactivations are flushed first so the partial unique index never
        sees the old and the new row active together.
        """
        now = utcnow()

        if plan.to_deactivate:
            rows = self.session.exec(
                select(Regional).where(Regional.id.in_(sorted(plan.to_deactivate)))
            ).all()
            found = {row.id for row in rows}
            missing = set(plan.to_deactivate) - found
            if missing:
                raise DataIntegrityViolation(
                    f"Cannot deactivate unknown regional ids {sorted(missing)}"
                )
            for row in rows:
                if not row.is_active:
                    raise DataIntegrityViolation(
                        f"Regional id={row.id} is already inactive"
                    )
                row.is_active = False
                row.updated_at = now
                self.session.add(row)
            self.session.flush()

        for record in plan.to_insert:
            self.session.add(
                Regional(
                    external_id=record.external_id,
                    name=record.name,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                )
            )
        self.session.flush()

        return len(plan.to_insert), len(plan.to_deactivate)

    # ------------------------------------------------------------------
    # Read-only helpers for the API
    # ------------------------------------------------------------------

    def list_regionals(self, include_inactive: bool = False) -> List[Regional]:
        stmt = select(Regional)
        if not include_inactive:
            stmt = stmt.where(Regional.is_active == True)  # noqa: E712
        return list(self.session.exec(stmt.order_by(Regional.name, Regional.id)).all())

    def history_for(self, external_id: str) -> List[Regional]:
        return list(
            self.session.exec(
                select(Regional)
                .where(Regional.external_id == external_id)
                .order_by(Regional.id)
            ).all()
        )
