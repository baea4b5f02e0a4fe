from __future__ import annotations

from threading import Lock
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pymongo.errors import PyMongoError

from core.catalog.catalog import ReconcilingCatalog
from core.catalog.errors import CatalogError
from core.logging_config import get_logger
from schemas.document_schema import CatalogPageOut
from schemas.imports import DocumentCategory

logger = get_logger(__name__)

AUDIT_JOB_ID = "catalog_audit"


class CatalogRefreshSession:
    """Re-lists page 0 of one scope on an interval without invalidating its cache.

    ``stop`` removes the job; a run already in flight finishes but its page is
    discarded.
    """

    def __init__(
        self,
        catalog: ReconcilingCatalog,
        *,
        owner_id: str | None,
        category: DocumentCategory,
        scheduler: BaseScheduler,
        interval_seconds: int = 30,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid4().hex
        self.owner_id = owner_id
        self.category = category
        self.latest: CatalogPageOut | None = None
        self._catalog = catalog
        self._scheduler = scheduler
        self._interval_seconds = interval_seconds
        self._active = False

    @property
    def job_id(self) -> str:
        return f"catalog_refresh:{self.session_id}"

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self._interval_seconds),
            id=self.job_id,
            name=f"Catalog refresh {self.category.value}",
            replace_existing=True,
        )
        self._active = True

    def stop(self) -> None:
        self._active = False
        try:
            self._scheduler.remove_job(self.job_id)
        except JobLookupError:
            logger.debug("catalog_refresh_job_already_removed", session_id=self.session_id)

    async def tick(self) -> CatalogPageOut | None:
        if not self._active:
            return None
        try:
            page = await self._catalog.list_page(self.owner_id, self.category, page=0, force_refresh=False)
        except (CatalogError, PyMongoError) as err:
            logger.warning("catalog_refresh_failed", session_id=self.session_id, error=str(err))
            return None

        if not self._active:
            return None
        self.latest = page
        return page


class RefreshSessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, CatalogRefreshSession] = {}
        self._lock = Lock()

    def open(self, session: CatalogRefreshSession) -> CatalogRefreshSession:
        session.start()
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> CatalogRefreshSession | None:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.stop()
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)


refresh_sessions = RefreshSessionRegistry()


async def run_catalog_audit(catalog: ReconcilingCatalog) -> None:
    """Backfill and orphan-sweep every category over the unscoped view."""
    for category in DocumentCategory:
        try:
            report = await catalog.audit(None, category)
        except (CatalogError, PyMongoError) as err:
            logger.warning("catalog_audit_failed", category=category.value, error=str(err))
            continue
        logger.info(
            "catalog_audit_completed",
            category=category.value,
            backfilled=len(report.reconciliation.backfilled),
            orphans_removed=len(report.orphans_removed),
        )
