"""
Scheduler service for recurring analysis runs and watchlist checks.

Uses APScheduler with cron and interval triggers.
"""

from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from signalsynth.core.config import Settings, get_settings
from signalsynth.core.logging import get_logger

logger = get_logger("scheduler")


class SchedulerService:
    """
    Periodic job runner.

    Jobs are plain callables; async work should be wrapped by the caller
    (e.g. lambda: asyncio.run(...)).
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        config: Optional[dict] = None,
        scheduler: Optional[BaseScheduler] = None,
    ):
        self.settings = settings or get_settings()
        self.config = config or {}
        self._scheduler = scheduler
        self._jobs: dict[str, str] = {}  # name -> job_id

    @property
    def scheduler(self) -> BaseScheduler:
        """Lazy-initialize scheduler."""
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(timezone=self.settings.timezone)
        return self._scheduler

    def add_job(
        self,
        name: str,
        func: Callable,
        cron: str,
        args: Optional[tuple] = None,
        kwargs: Optional[dict] = None,
    ) -> str:
        """
        Add a cron job.

        Args:
            name: Job name
            func: Function to execute
            cron: Five-field cron expression (e.g., "35 9 * * mon-fri")

        Raises:
            ValueError: Malformed cron expression
        """
        parts = cron.split()
        if len(parts) != 5:
            raise ValueError(f"Invalid cron expression: {cron}")

        trigger = CronTrigger(
            minute=parts[0],
            hour=parts[1],
            day=parts[2],
            month=parts[3],
            day_of_week=parts[4],
            timezone=self.settings.timezone,
        )

        job = self.scheduler.add_job(
            func,
            trigger=trigger,
            args=args or (),
            kwargs=kwargs or {},
            id=name,
            name=name,
            replace_existing=True,
        )

        self._jobs[name] = job.id
        logger.info(f"Added job: {name} with cron '{cron}'")
        return job.id

    def add_interval_job(
        self,
        name: str,
        func: Callable,
        minutes: int,
        args: Optional[tuple] = None,
        kwargs: Optional[dict] = None,
    ) -> str:
        job = self.scheduler.add_job(
            func,
            "interval",
            minutes=minutes,
            args=args or (),
            kwargs=kwargs or {},
            id=name,
            name=name,
            replace_existing=True,
        )

        self._jobs[name] = job.id
        logger.info(f"Added interval job: {name} every {minutes} minutes")
        return job.id

    def remove_job(self, name: str) -> bool:
        if name in self._jobs:
            self.scheduler.remove_job(self._jobs[name])
            del self._jobs[name]
            logger.info(f"Removed job: {name}")
            return True
        return False

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")

    def get_jobs(self) -> list[dict[str, Any]]:
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
            })
        return jobs

    def setup_from_config(
        self,
        analysis_func: Callable,
        alert_func: Optional[Callable] = None,
    ) -> None:
        """
        Register jobs from the `scheduler` section of config.yaml.

        - analysis: cron-scheduled full pipeline run
        - alert_check: interval watchlist check
        """
        scheduler_config = self.config.get("scheduler", {})

        analysis_config = scheduler_config.get("analysis", {})
        if analysis_config.get("enabled", False):
            cron = analysis_config.get("cron", "35 9 * * mon-fri")
            self.add_job("analysis", analysis_func, cron)

        alert_config = scheduler_config.get("alert_check", {})
        if alert_func is not None and alert_config.get("enabled", False):
            minutes = alert_config.get("interval_minutes", 15)
            self.add_interval_job("alert_check", alert_func, minutes)


def create_scheduler_service(
    settings: Optional[Settings] = None,
    config: Optional[dict] = None,
) -> SchedulerService:
    """Create scheduler service."""
    return SchedulerService(settings=settings, config=config)
