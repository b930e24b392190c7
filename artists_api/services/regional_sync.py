"""
Regional sync runner and its periodic scheduler.

Key features:
- Single-flight: one sync at a time per process. An overlapping trigger
  raises `SyncAlreadyRunning` right away; it is never queued.
- Load, reconcile and apply run inside one DB transaction; any failure
  rolls the whole run back.
- A failed fetch skips the cycle; it is never treated as an empty list.
- The scheduled path only logs failures, the admin path surfaces them.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from artists_api.services.reconciler import (
    DataIntegrityViolation,
    RegionalSyncError,
    reconcile,
)
from artists_api.services.regional_source import RegionalSource, SourceUnavailable
from artists_api.services.regional_store import RegionalStore

logger = logging.getLogger(__name__)

# Process-wide "is a reconciliation running" guard, starts unlocked
_SYNC_LOCK = threading.Lock()


class SyncAlreadyRunning(RegionalSyncError):
    """Another regional sync is in flight."""


@contextmanager
def single_flight(lock: threading.Lock) -> Iterator[None]:
    """Hold `lock` for the block, or raise SyncAlreadyRunning if it is taken."""
    if not lock.acquire(blocking=False):
        raise SyncAlreadyRunning("A regional sync is already running")
    try:
        yield
    finally:
        lock.release()


@dataclass(frozen=True)
class SyncSummary:
    inserted: int = 0
    deactivated: int = 0
    skipped: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


class RegionalSyncService:
    """Fetch upstream, reconcile against the mirror, apply atomically."""

    def __init__(
        self,
        source: RegionalSource,
        engine: Engine,
        *,
        skip_empty_fetch: bool = False,
        lock: Optional[threading.Lock] = None,
    ):
        self.source = source
        self.engine = engine
        self.skip_empty_fetch = skip_empty_fetch
        self._lock = lock if lock is not None else _SYNC_LOCK

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run(self) -> SyncSummary:
        """
        Run one reconciliation.

        Raises:
            SyncAlreadyRunning: another run holds the lock.
            SourceUnavailable: the upstream fetch failed; nothing was written.
            DataIntegrityViolation: the mirror is corrupt; nothing was written.
        """
        with single_flight(self._lock):
            records = self.source.fetch_all()

            if not records and self.skip_empty_fetch:
                logger.warning(
                    "Regional source returned an empty list; skipping this cycle"
                )
                return SyncSummary(skipped=True)

            with Session(self.engine) as session, session.begin():
                store = RegionalStore(session)
                plan = reconcile(records, store.load_active_and_history())
                if plan.is_empty:
                    logger.info("Regional mirror already up to date")
                    return SyncSummary()
                inserted, deactivated = store.apply_plan(plan)

            logger.info(
                "Regional sync applied: inserted=%d deactivated=%d",
                inserted,
                deactivated,
            )
            return SyncSummary(inserted=inserted, deactivated=deactivated)

    def run_scheduled(self) -> Optional[SyncSummary]:
        """Scheduled entry point: never raises, failures are only logged."""
        try:
            return self.run()
        except SyncAlreadyRunning:
            logger.info("Scheduled regional sync skipped: another run in progress")
        except SourceUnavailable as e:
            logger.warning("Scheduled regional sync skipped: %s", e)
        except DataIntegrityViolation as e:
            logger.critical("Regional mirror integrity violation: %s", e)
        except Exception:
            logger.exception("Scheduled regional sync failed")
        return None


class RegionalSyncScheduler:
    """
    Background asyncio task calling `run_scheduled` every `interval` seconds.

    The blocking sync runs in a worker thread so the event loop stays free.
    The first run happens right after start.
    """

    def __init__(self, service: RegionalSyncService, interval: float):
        self.service = service
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="regional-sync")
        logger.info("Regional sync scheduler started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Regional sync scheduler stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await asyncio.to_thread(self.service.run_scheduled)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
