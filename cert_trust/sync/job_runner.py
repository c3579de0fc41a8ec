"""APScheduler wrapper owning the live job table.

The table is never patched in place: ``replace`` shuts the current scheduler
down, so nothing from the old generation fires afterwards, and starts a fresh
one with the new entries. There is a short window with no live jobs.
"""

import threading
from typing import Any, Sequence

import structlog
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from cert_trust.sync.models import ScheduleEntry

log = structlog.stdlib.get_logger()


class JobRunner:
    """Owns one BackgroundScheduler per table generation."""

    def __init__(
        self,
        max_workers: int = 10,
        timezone: str = "UTC",
        misfire_grace_time: int = 60,
    ) -> None:
        """Initialize the job runner.

        Args:
            max_workers: Thread pool size; different jobs run concurrently
            timezone: Scheduler timezone
            misfire_grace_time: Seconds a late firing may still run
        """
        self._max_workers = max_workers
        self._timezone = timezone
        self._misfire_grace_time = misfire_grace_time
        self._scheduler: BackgroundScheduler | None = None
        self._generation = 0
        self._lock = threading.Lock()
        self._stopped = threading.Event()

    def _create_scheduler(self) -> BackgroundScheduler:
        """Create and configure the APScheduler instance."""
        executors = {
            "default": ThreadPoolExecutor(max_workers=self._max_workers),
        }

        job_defaults = {
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # A job never overlaps itself
            "misfire_grace_time": self._misfire_grace_time,
        }

        return BackgroundScheduler(
            executors=executors,
            job_defaults=job_defaults,
            timezone=self._timezone,
        )

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_running(self) -> bool:
        scheduler = self._scheduler
        return scheduler is not None and scheduler.running

    def replace(self, entries: Sequence[ScheduleEntry]) -> int:
        """Atomically swap the job table.

        Args:
            entries: The complete new table

        Returns:
            Generation number of the installed table
        """
        with self._lock:
            self._stopped.clear()
            self._shutdown_current()

            self._generation += 1
            scheduler = self._create_scheduler()
            for entry in entries:
                scheduler.add_job(
                    entry.callback,
                    trigger=entry.trigger,
                    id=f"{self._generation}:{entry.key}",
                    name=entry.job_name,
                )

            self._scheduler = scheduler
            if entries:
                scheduler.start()
                log.info(
                    "cron_scheduler_started",
                    generation=self._generation,
                    entries=len(entries),
                )
            else:
                log.info("cron_scheduler_has_no_entries", generation=self._generation)

            return self._generation

    def trigger_once(
        self,
        entries: Sequence[ScheduleEntry],
        delay: float = 0.0,
        wait: bool = False,
    ) -> threading.Thread | None:
        """Run each entry's callback once, outside the regular cadence.

        Args:
            entries: Entries to run, in order
            delay: Seconds to wait before running (asynchronous mode only)
            wait: Run synchronously in the calling thread

        Returns:
            The background thread, or None when run synchronously
        """
        if wait:
            self._run_entries(entries)
            return None

        def run() -> None:
            if delay and self._stopped.wait(delay):
                log.info("one_shot_sync_abandoned", entries=len(entries))
                return
            self._run_entries(entries)

        thread = threading.Thread(target=run, name="cert-trust-one-shot", daemon=True)
        thread.start()
        return thread

    def _run_entries(self, entries: Sequence[ScheduleEntry]) -> None:
        for entry in entries:
            if self._stopped.is_set():
                log.info("one_shot_sync_interrupted", import_key=str(entry.key))
                return
            log.info("triggering_immediate_import_sync", import_key=str(entry.key))
            try:
                entry.callback()
            except Exception:
                log.exception("one_shot_sync_failed", import_key=str(entry.key))

    def stop(self) -> None:
        """Halt all future firings. Callbacks already running are not cancelled."""
        with self._lock:
            self._stopped.set()
            self._shutdown_current()
            self._scheduler = None
        log.info("job_runner_stopped", generation=self._generation)

    def _shutdown_current(self) -> None:
        scheduler = self._scheduler
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
            log.debug("cron_scheduler_shutdown", generation=self._generation)

    def get_jobs(self) -> list[dict[str, Any]]:
        """Get all live jobs of the current generation.

        Returns:
            List of job details
        """
        scheduler = self._scheduler
        if scheduler is None:
            return []

        jobs = []
        for job in scheduler.get_jobs():
            next_run_time = getattr(job, "next_run_time", None)
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": next_run_time.isoformat() if next_run_time else None,
                    "trigger": str(job.trigger),
                }
            )
        return jobs

    def next_run_time(self, name: str) -> str | None:
        """Next firing time of the live job called ``name``, if any."""
        for job in self.get_jobs():
            if job["name"] == name:
                return job["next_run_time"]
        return None
