"""Tests for the reschedule loop and manual controller operations."""

import threading
import time

import pytest

from cert_trust.errors import SourceNotFoundError, StoreError
from cert_trust.models.config import SchedulerConfig
from cert_trust.models.resources import (
    TLS_CERT_KEY,
    CertificateExport,
    CertificateImport,
    ObjectKey,
    ResourceKind,
)
from cert_trust.store.memory import InMemoryResourceStore
from cert_trust.sync.controller import SyncController
from cert_trust.sync.job_runner import JobRunner
from cert_trust.sync.models import ControllerState, SyncResult

TARGET = ObjectKey(namespace="team-a", name="web-tls")


class RecordingJobRunner(JobRunner):
    """Job runner that remembers one-shot calls and their threads."""

    def __init__(self):
        super().__init__(max_workers=2)
        self.one_shots: list[tuple[list, float, bool]] = []
        self.threads: list[threading.Thread] = []

    def trigger_once(self, entries, delay=0.0, wait=False):
        self.one_shots.append((list(entries), delay, wait))
        thread = super().trigger_once(entries, delay=delay, wait=wait)
        if thread is not None:
            self.threads.append(thread)
        return thread

    def join_one_shots(self):
        for thread in self.threads:
            thread.join(5)


class FlakyStore(InMemoryResourceStore):
    """Fails to list exports a given number of times."""

    def __init__(self, failures: int, error: Exception | None = None):
        super().__init__()
        self.failures = failures
        self.error = error or StoreError("apiserver unavailable", status=503)

    def list_exports(self):
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        return super().list_exports()


class CorruptSecretStore(InMemoryResourceStore):
    """Raises a non-domain error whenever a secret is read."""

    def get_secret(self, key):
        raise RuntimeError("Incorrect padding")


def make_controller(store, immediate_on_start=False, interval=60.0):
    config = SchedulerConfig(
        reschedule_interval_seconds=interval,
        immediate_on_start=immediate_on_start,
        immediate_delay_seconds=0,
    )
    return SyncController(store, config, job_runner=RecordingJobRunner())


@pytest.fixture
def controller(seeded_store):
    controller = make_controller(seeded_store)
    yield controller
    controller.stop()


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_first_reconcile_builds_table(controller: SyncController):
    assert controller.state is ControllerState.STOPPED

    assert controller.reconcile() is True

    assert controller.state is ControllerState.RUNNING
    assert controller.job_runner.generation == 1
    assert [job["name"] for job in controller.job_runner.get_jobs()] == ["import:team-a/web"]
    assert controller.change_detector.last_built is not None


def test_unchanged_resources_skip_rebuild_without_extra_reads(
    controller: SyncController, seeded_store
):
    controller.reconcile()
    before = dict(seeded_store.calls)

    assert controller.reconcile() is False

    after = dict(seeded_store.calls)
    assert after.pop("list_exports") == before.pop("list_exports") + 1
    assert after.pop("list_imports") == before.pop("list_imports") + 1
    assert after == before
    assert controller.job_runner.generation == 1


def test_schedule_change_rebuilds(controller: SyncController, seeded_store):
    controller.reconcile()
    seeded_store.put_import(
        CertificateImport(
            namespace="team-a",
            name="web",
            from_export="shared/web-tls",
            target_secret="web-tls",
            schedule="*/5 * * * *",
        )
    )

    assert controller.reconcile() is True
    assert controller.job_runner.generation == 2
    assert controller.state is ControllerState.RUNNING


def test_export_change_rebuilds(controller: SyncController, seeded_store):
    controller.reconcile()
    seeded_store.put_export(
        CertificateExport(namespace="shared", name="web-tls", secret_ref="rotated-cert")
    )

    assert controller.reconcile() is True


def test_removed_import_leaves_table(controller: SyncController, seeded_store):
    controller.reconcile()
    seeded_store.delete_import(ObjectKey(namespace="team-a", name="web"))

    assert controller.reconcile() is True
    assert controller.job_runner.get_jobs() == []


def test_invalid_schedule_does_not_block_others(controller: SyncController, seeded_store):
    seeded_store.put_import(
        CertificateImport(
            namespace="team-b",
            name="broken",
            from_export="shared/web-tls",
            target_secret="web-tls",
            schedule="not a cron",
        )
    )

    controller.reconcile()

    assert [job["name"] for job in controller.job_runner.get_jobs()] == ["import:team-a/web"]


def test_list_failure_propagates_and_keeps_state():
    store = FlakyStore(failures=1)
    controller = make_controller(store)
    try:
        with pytest.raises(StoreError):
            controller.reconcile()
        assert controller.state is ControllerState.STOPPED
        assert controller.change_detector.last_built is None
    finally:
        controller.stop()


def test_prime_runs_once_after_first_build(seeded_store):
    controller = make_controller(seeded_store, immediate_on_start=True)
    runner = controller.job_runner
    try:
        controller.reconcile()
        runner.join_one_shots()

        assert len(runner.one_shots) == 1
        entries, delay, wait = runner.one_shots[0]
        assert [e.key for e in entries] == [ObjectKey(namespace="team-a", name="web")]
        assert delay == 0 and wait is False
        assert seeded_store.get_secret(TARGET).data[TLS_CERT_KEY] == b"CERT"

        seeded_store.put_import(
            CertificateImport(
                namespace="team-c", name="api", from_export="shared/web-tls",
                target_secret="api-tls",
            )
        )
        assert controller.reconcile() is True
        assert len(runner.one_shots) == 1
    finally:
        controller.stop()


def test_prime_waits_for_first_import(store, tls_secret):
    controller = make_controller(store, immediate_on_start=True)
    runner = controller.job_runner
    try:
        controller.reconcile()
        assert runner.one_shots == []

        store.put_secret(tls_secret("shared", "web-cert"))
        store.put_export(
            CertificateExport(namespace="shared", name="web-tls", secret_ref="web-cert")
        )
        store.put_import(
            CertificateImport(
                namespace="team-a", name="web", from_export="shared/web-tls",
                target_secret="web-tls",
            )
        )
        controller.reconcile()
        runner.join_one_shots()

        assert len(runner.one_shots) == 1
        assert store.get_secret(TARGET) is not None
    finally:
        controller.stop()


def test_prime_waits_for_first_schedulable_import(seeded_store):
    seeded_store.put_import(
        CertificateImport(
            namespace="team-a", name="web", from_export="shared/web-tls",
            target_secret="web-tls", schedule="not a cron",
        )
    )
    controller = make_controller(seeded_store, immediate_on_start=True)
    runner = controller.job_runner
    try:
        controller.reconcile()
        assert runner.one_shots == []
        assert runner.get_jobs() == []

        seeded_store.put_import(
            CertificateImport(
                namespace="team-a", name="web", from_export="shared/web-tls",
                target_secret="web-tls", schedule="@every 30m",
            )
        )
        assert controller.reconcile() is True
        runner.join_one_shots()

        assert len(runner.one_shots) == 1
        assert seeded_store.get_secret(TARGET) is not None
    finally:
        controller.stop()


def test_prime_skipped_when_disabled(controller: SyncController):
    controller.reconcile()

    assert controller.job_runner.one_shots == []


def test_loop_survives_store_failures(seeded_store):
    store = FlakyStore(failures=2)
    for item in seeded_store.list_imports():
        store.put_import(item)
    controller = make_controller(store, interval=0.05)
    try:
        controller.start()
        assert wait_for(lambda: controller.state is ControllerState.RUNNING)
        assert store.failures == 0
    finally:
        controller.stop()

    assert controller.state is ControllerState.STOPPED
    assert not controller.job_runner.is_running


def test_loop_survives_unexpected_errors(seeded_store):
    store = FlakyStore(failures=2, error=KeyError("No time zone found with key Not/AZone"))
    for item in seeded_store.list_imports():
        store.put_import(item)
    controller = make_controller(store, interval=0.05)
    try:
        controller.start()
        assert wait_for(lambda: controller.state is ControllerState.RUNNING)
        assert store.failures == 0
        assert controller.job_runner.generation == 1
    finally:
        controller.stop()


def test_run_blocks_until_stopped(seeded_store):
    controller = make_controller(seeded_store, interval=0.05)
    runner_thread = threading.Thread(target=controller.run)
    runner_thread.start()

    assert wait_for(lambda: controller.state is ControllerState.RUNNING)
    controller.stop()
    runner_thread.join(5)

    assert not runner_thread.is_alive()
    assert controller.state is ControllerState.STOPPED


def test_start_twice_is_harmless(seeded_store):
    controller = make_controller(seeded_store, interval=0.05)
    try:
        controller.start()
        controller.start()
        assert wait_for(lambda: controller.state is ControllerState.RUNNING)
    finally:
        controller.stop()


def test_sync_all_imports_counts_outcomes(controller: SyncController, seeded_store):
    seeded_store.put_import(
        CertificateImport(
            namespace="team-b", name="bad-schedule", from_export="shared/web-tls",
            target_secret="web-tls", schedule="99 * * * *",
        )
    )
    seeded_store.put_import(
        CertificateImport(
            namespace="team-c", name="no-export", from_export="shared/missing",
            target_secret="web-tls",
        )
    )

    succeeded, failed = controller.sync_all_imports()

    assert (succeeded, failed) == (1, 2)
    assert seeded_store.get_secret(TARGET) is not None
    assert seeded_store.status_of(
        ResourceKind.IMPORT, ObjectKey(namespace="team-a", name="web")
    ).get("lastSyncTime")


def test_verify_exports_reports_each_export(controller: SyncController, seeded_store):
    seeded_store.put_export(
        CertificateExport(namespace="shared", name="dangling", secret_ref="nothing-here")
    )

    outcomes = dict((str(export.key), outcome) for export, outcome in controller.verify_exports())

    assert isinstance(outcomes["shared/web-tls"], SyncResult)
    assert isinstance(outcomes["shared/dangling"], SourceNotFoundError)
    assert "nothing-here" in str(outcomes["shared/dangling"])


def test_sync_all_imports_counts_unexpected_errors_as_failed(seeded_store):
    store = CorruptSecretStore()
    for export in seeded_store.list_exports():
        store.put_export(export)
    for item in seeded_store.list_imports():
        store.put_import(item)
    controller = make_controller(store)
    try:
        assert controller.sync_all_imports() == (0, 1)
    finally:
        controller.stop()
