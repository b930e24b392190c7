"""
Regional mirror endpoints:

- Read-only listing of the mirror (any logged-in user).
- Per-identity history, superseded rows included.
- On-demand sync trigger (admin-only, no parameters).
"""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from artists_api.core.deps import (
    get_current_user,
    get_session,
    get_sync_service,
    require_admin,
)
from artists_api.db.models.regional import Regional
from artists_api.db.models.user import User
from artists_api.services.reconciler import DataIntegrityViolation
from artists_api.services.regional_source import SourceUnavailable
from artists_api.services.regional_store import RegionalStore
from artists_api.services.regional_sync import RegionalSyncService, SyncAlreadyRunning

router = APIRouter(prefix="/regionals")
log = logging.getLogger(__name__)


def _regional_payload(r: Regional) -> dict:
    return {
        "id": r.id,
        "external_id": r.external_id,
        "name": r.name,
        "is_active": r.is_active,
        "created_at": r.created_at.isoformat(),
        "updated_at": r.updated_at.isoformat(),
    }


@router.get("")
def list_regionals(
    include_inactive: bool = Query(False),
    session: Session = Depends(get_session),
    current: User = Depends(get_current_user),
) -> List[dict]:
    """Active regionals by name; `include_inactive` adds superseded rows."""
    rows = RegionalStore(session).list_regionals(include_inactive=include_inactive)
    return [_regional_payload(r) for r in rows]


@router.get("/{external_id}/history")
def regional_history(
    external_id: str,
    session: Session = Depends(get_session),
    current: User = Depends(get_current_user),
) -> List[dict]:
    rows = RegionalStore(session).history_for(external_id)
    if not rows:
        raise HTTPException(status_code=404, detail="Regional not found")
    return [_regional_payload(r) for r in rows]


@router.post("/sync")
def trigger_sync(
    current: User = Depends(require_admin),
    service: RegionalSyncService = Depends(get_sync_service),
):
    """
    Run a regional sync now and report what changed.

    Failures come back as {"ok": false, "error": <code>, "detail": ...}:
      - 409 sync_in_progress          another run holds the lock
      - 502 source_unavailable        upstream fetch failed, nothing written
      - 500 data_integrity_violation  mirror is corrupt, nothing written
      - 500 storage_failure           DB error while applying, rolled back
    """
    log.info("Regional sync triggered by %r", current.login)
    try:
        summary = service.run()
    except SyncAlreadyRunning:
        return JSONResponse(
            status_code=409,
            content={"ok": False, "error": "sync_in_progress"},
        )
    except SourceUnavailable as e:
        log.warning("On-demand regional sync failed: %s", e)
        return JSONResponse(
            status_code=502,
            content={"ok": False, "error": "source_unavailable", "detail": str(e)},
        )
    except DataIntegrityViolation as e:
        log.critical("Regional mirror integrity violation: %s", e)
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": "data_integrity_violation",
                "detail": str(e),
            },
        )
    except SQLAlchemyError as e:
        log.exception("Regional sync rolled back after storage failure")
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": "storage_failure",
                "detail": type(e).__name__,
            },
        )

    return {"ok": True, **summary.as_dict()}
