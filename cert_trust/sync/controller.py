"""Reschedule loop driving discovery, change detection and the job table."""

import threading
from typing import Callable

import structlog

from cert_trust.errors import CertTrustError
from cert_trust.models.config import SchedulerConfig
from cert_trust.models.resources import CertificateExport, CertificateImport
from cert_trust.store.base import ResourceStore
from cert_trust.sync.change_detector import ChangeDetector
from cert_trust.sync.job_runner import JobRunner
from cert_trust.sync.models import BuildResult, ControllerState, SyncResult
from cert_trust.sync.schedule_builder import ScheduleBuilder
from cert_trust.sync.sync_executor import SyncExecutor

log = structlog.stdlib.get_logger()


class SyncController:
    """Keeps the job table in step with the declared exports and imports.

    Every tick lists exports and imports and fingerprints them. The table is
    rebuilt from scratch only when the fingerprint changed. The table and the
    last fingerprint are written only from the loop thread.
    """

    def __init__(
        self,
        store: ResourceStore,
        config: SchedulerConfig | None = None,
        executor: SyncExecutor | None = None,
        job_runner: JobRunner | None = None,
    ):
        """
        Initialize the controller.

        Args:
            store: Resource store client
            config: Scheduler settings (defaults apply when None)
            executor: Optional sync executor (built from the store if None)
            job_runner: Optional job runner (built from the config if None)
        """
        self._store = store
        self._config = config or SchedulerConfig()
        self._executor = executor or SyncExecutor(store)
        self._job_runner = job_runner or JobRunner(
            max_workers=self._config.max_workers,
            timezone=self._config.timezone,
            misfire_grace_time=self._config.misfire_grace_time,
        )
        self._change_detector = ChangeDetector()
        self._builder = ScheduleBuilder(
            job_factory=self._job_for,
            default_schedule=self._config.default_schedule,
            timezone=self._config.timezone,
        )

        self._state = ControllerState.STOPPED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._loop_thread: threading.Thread | None = None
        # At most one startup sync per process lifetime.
        self._primed = False

        log.info(
            "sync_controller_initialized",
            reschedule_interval_seconds=self._config.reschedule_interval_seconds,
            immediate_on_start=self._config.immediate_on_start,
        )

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def job_runner(self) -> JobRunner:
        return self._job_runner

    @property
    def change_detector(self) -> ChangeDetector:
        return self._change_detector

    def _set_state(self, state: ControllerState) -> None:
        with self._state_lock:
            if state != self._state:
                log.debug("controller_state_changed", old=self._state.value, new=state.value)
            self._state = state

    # Lifecycle

    def start(self) -> None:
        """Start the reschedule loop in a background thread."""
        if self._loop_thread is not None and self._loop_thread.is_alive():
            log.warning("sync_controller_already_started")
            return

        log.info("starting_sync_scheduler")
        self._stop_event.clear()
        self._loop_thread = threading.Thread(
            target=self._reschedule_loop, name="cert-trust-reschedule", daemon=True
        )
        self._loop_thread.start()

    def run(self) -> None:
        """Start the controller and block until ``stop`` is called."""
        self.start()
        self._stop_event.wait()
        if self._loop_thread is not None:
            self._loop_thread.join()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop and halt all future job firings."""
        log.info("stopping_sync_scheduler")
        self._set_state(ControllerState.STOPPING)
        self._stop_event.set()

        thread = self._loop_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

        self._job_runner.stop()
        self._set_state(ControllerState.STOPPED)

    def _reschedule_loop(self) -> None:
        interval = self._config.reschedule_interval_seconds
        while not self._stop_event.is_set():
            try:
                self.reconcile()
            except CertTrustError as e:
                log.error("failed_to_build_schedules", error=str(e))
            except Exception:
                log.exception("failed_to_build_schedules")
            if self._stop_event.wait(interval):
                return

    # Scheduling

    def reconcile(self) -> bool:
        """
        Run one tick of the reschedule loop.

        Returns:
            True if the job table was rebuilt, False if nothing changed

        Raises:
            StoreError: If exports or imports cannot be listed
        """
        exports = self._store.list_exports()
        imports = self._store.list_imports()

        fingerprint = self._change_detector.fingerprint(exports, imports)
        if not self._change_detector.has_changed(fingerprint):
            return False

        first_build = self._change_detector.last_built is None
        previous_state = self._state
        self._set_state(ControllerState.BUILDING if first_build else ControllerState.REBUILDING)
        try:
            result = self._builder.build(imports)
            generation = self._job_runner.replace(result.entries)
        except Exception:
            self._set_state(previous_state)
            raise

        self._change_detector.mark_built(fingerprint)
        self._set_state(ControllerState.RUNNING)

        log.info(
            "recreated_cron_scheduler",
            generation=generation,
            exports=len(exports),
            imports=len(imports),
            scheduled=len(result.entries),
            skipped=len(result.diagnostics),
        )
        for job in self._job_runner.get_jobs():
            log.debug("cron_entry_details", **job)

        self._maybe_prime(result)
        return True

    def _maybe_prime(self, result: BuildResult) -> None:
        if not self._config.immediate_on_start or self._primed or not result.entries:
            return

        self._primed = True
        log.info(
            "triggering_immediate_import_sync_on_start",
            entries=len(result.entries),
            delay_seconds=self._config.immediate_delay_seconds,
        )
        self._job_runner.trigger_once(
            result.entries, delay=self._config.immediate_delay_seconds
        )

    def _job_for(self, item: CertificateImport) -> Callable[[], None]:
        namespace = item.namespace
        name = item.name
        from_export = item.from_export
        target_secret = item.target_secret

        def run() -> None:
            self._run_import(namespace, name, from_export, target_secret)

        return run

    def _run_import(
        self, namespace: str, name: str, from_export: str, target_secret: str
    ) -> bool:
        import_key = f"{namespace}/{name}"
        log.info("executing_import_sync", import_key=import_key)
        try:
            result = self._executor.sync_import(namespace, name, from_export, target_secret)
        except CertTrustError as e:
            log.error(
                "failed_to_sync_import",
                import_key=import_key,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

        log.info(
            "import_sync_completed",
            import_key=import_key,
            action=result.action.value,
            next_run=self._job_runner.next_run_time(f"import:{import_key}"),
        )
        return True

    # Manual operations

    def sync_all_imports(self) -> tuple[int, int]:
        """
        Synchronize every schedulable import once, in the calling thread.

        Returns:
            Tuple of (succeeded, failed) counts, counting skipped schedules as failed
        """
        imports = self._store.list_imports()
        outcomes: list[bool] = []

        def job_factory(item: CertificateImport) -> Callable[[], None]:
            def run() -> None:
                ok = False
                try:
                    ok = self._run_import(
                        item.namespace, item.name, item.from_export, item.target_secret
                    )
                finally:
                    outcomes.append(ok)

            return run

        builder = ScheduleBuilder(
            job_factory=job_factory,
            default_schedule=self._config.default_schedule,
            timezone=self._config.timezone,
        )
        result = builder.build(imports)
        self._job_runner.trigger_once(result.entries, wait=True)

        succeeded = sum(outcomes)
        return succeeded, len(outcomes) - succeeded + len(result.diagnostics)

    def verify_exports(self) -> list[tuple[CertificateExport, SyncResult | CertTrustError]]:
        """
        Verify every export's source secret.

        Returns:
            One (export, result-or-error) pair per export
        """
        outcomes: list[tuple[CertificateExport, SyncResult | CertTrustError]] = []
        for export in self._store.list_exports():
            try:
                result = self._executor.sync_export(
                    export.namespace, export.name, export.secret_ref
                )
            except CertTrustError as e:
                log.error("failed_to_verify_export", export_key=str(export.key), error=str(e))
                outcomes.append((export, e))
                continue
            outcomes.append((export, result))
        return outcomes
