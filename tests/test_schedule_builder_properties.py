"""Property-based tests for schedule building.

Feature: cert-trust-scheduler
"""

import structlog
from apscheduler.triggers.interval import IntervalTrigger
from hypothesis import given
from hypothesis import strategies as st

from cert_trust.models.resources import CertificateImport, ObjectKey
from cert_trust.sync.schedule_builder import ScheduleBuilder

log = structlog.stdlib.get_logger()

VALID_SCHEDULES = ["@every 10m", "@daily", "*/5 * * * *", "0 3 * * 1-5", None]
INVALID_SCHEDULES = ["bogus", "61 * * * *", "@every -1m", "* * *"]


def make_import(name: str, schedule: str | None) -> CertificateImport:
    return CertificateImport(
        namespace="team-a",
        name=name,
        from_export="shared/web-tls",
        target_secret=f"{name}-tls",
        schedule=schedule,
    )


def recording_factory(calls: list):
    def factory(item: CertificateImport):
        calls.append(item.key)
        return lambda: None

    return factory


@given(
    schedules=st.lists(
        st.sampled_from(VALID_SCHEDULES + INVALID_SCHEDULES), min_size=0, max_size=12
    )
)
def test_property_5_invalid_schedules_are_isolated(schedules):
    """Property 5: Invalid schedules are isolated.

    For any mix of valid and invalid schedules, every import with a valid
    schedule gets an entry and every invalid one gets a diagnostic instead.

    **Feature: cert-trust-scheduler, Property 5: Schedule isolation**
    """
    log.info("test_property_5_invalid_schedules_are_isolated", count=len(schedules))

    imports = [make_import(f"imp-{i}", s) for i, s in enumerate(schedules)]
    calls: list = []
    result = ScheduleBuilder(job_factory=recording_factory(calls)).build(imports)

    expected_valid = [i.key for i in imports if i.schedule not in INVALID_SCHEDULES]
    expected_invalid = [i.key for i in imports if i.schedule in INVALID_SCHEDULES]

    assert result.scheduled_keys == expected_valid
    assert result.skipped_keys == expected_invalid
    assert calls == expected_valid


def test_default_schedule_applies_to_unscheduled_imports():
    result = ScheduleBuilder(
        job_factory=lambda item: (lambda: None), default_schedule="@every 15m"
    ).build([make_import("web", None)])

    (entry,) = result.entries
    assert entry.schedule == "@every 15m"
    assert isinstance(entry.trigger, IntervalTrigger)
    assert entry.job_name == "import:team-a/web"
    assert entry.key == ObjectKey(namespace="team-a", name="web")


def test_diagnostic_names_the_rejected_schedule():
    result = ScheduleBuilder(job_factory=lambda item: (lambda: None)).build(
        [make_import("broken", "bogus")]
    )

    assert result.entries == []
    (diagnostic,) = result.diagnostics
    assert diagnostic.key == ObjectKey(namespace="team-a", name="broken")
    assert diagnostic.schedule == "bogus"
    assert "bogus" in diagnostic.error


def test_entry_callbacks_come_from_factory():
    ran = []

    def factory(item: CertificateImport):
        return lambda: ran.append(item.name)

    result = ScheduleBuilder(job_factory=factory).build(
        [make_import("a", "@daily"), make_import("b", "@hourly")]
    )
    for entry in result.entries:
        entry.callback()

    assert ran == ["a", "b"]


def test_empty_import_list_builds_empty_table():
    result = ScheduleBuilder(job_factory=lambda item: (lambda: None)).build([])

    assert result.entries == [] and result.diagnostics == []
