"""Background maintenance jobs.

Wraps an APScheduler ``BackgroundScheduler``. Each job runs inside a pushed
domain context, is never run twice at once, and has its failures logged
so the next interval retries it.
"""

from collections.abc import Callable

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from protean.domain import Domain

logger = structlog.get_logger(__name__)


class MaintenanceScheduler:
    def __init__(self, domain: Domain, scheduler: BackgroundScheduler | None = None):
        self.domain = domain
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self.is_running = False

    def add_interval_job(self, job_id: str, func: Callable, seconds: float, name: str | None = None) -> None:
        self.scheduler.add_job(
            func=self._run_job,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            name=name or job_id,
            kwargs={"job_id": job_id, "func": func},
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduled maintenance job", job_id=job_id, every_seconds=seconds)

    def remove_job(self, job_id: str) -> None:
        if self.scheduler.get_job(job_id):
            self.scheduler.remove_job(job_id)

    def job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def start(self) -> None:
        if not self.is_running:
            self.scheduler.start()
            self.is_running = True
            logger.info("Maintenance scheduler started", jobs=self.job_ids())

    def stop(self) -> None:
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Maintenance scheduler stopped")

    def _run_job(self, job_id: str, func: Callable) -> None:
        try:
            with self.domain.domain_context():
                result = func()
            logger.debug("Maintenance job finished", job_id=job_id, result=result)
        except Exception as exc:
            logger.error("Maintenance job failed", job_id=job_id, error=str(exc))
