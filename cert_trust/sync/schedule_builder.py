"""Translation of CertificateImports into a job table."""

from typing import Callable

import structlog

from cert_trust.errors import InvalidTriggerError
from cert_trust.models.resources import DEFAULT_SCHEDULE, CertificateImport
from cert_trust.sync.models import BuildResult, ScheduleDiagnostic, ScheduleEntry
from cert_trust.sync.triggers import parse_trigger

log = structlog.stdlib.get_logger()

JobFactory = Callable[[CertificateImport], Callable[[], None]]


class ScheduleBuilder:
    """Builds schedule entries for imports, isolating invalid schedules."""

    def __init__(
        self,
        job_factory: JobFactory,
        default_schedule: str = DEFAULT_SCHEDULE,
        timezone: str = "UTC",
    ):
        """
        Initialize the schedule builder.

        Args:
            job_factory: Returns the callback to run for an import on each firing
            default_schedule: Schedule for imports that declare none
            timezone: Timezone in which cron fields are interpreted
        """
        self._job_factory = job_factory
        self._default_schedule = default_schedule
        self._timezone = timezone

    def build(self, imports: list[CertificateImport]) -> BuildResult:
        """
        Build the job table for a set of imports.

        An import whose schedule fails validation is skipped and reported in
        the diagnostics; it never prevents the remaining imports from being
        scheduled.

        Args:
            imports: Current CertificateImports

        Returns:
            BuildResult with valid entries and diagnostics for skipped imports
        """
        result = BuildResult()

        for item in imports:
            schedule = item.effective_schedule(self._default_schedule)

            try:
                trigger = parse_trigger(schedule, self._timezone)
            except InvalidTriggerError as e:
                log.error(
                    "invalid_cron_schedule_for_import",
                    import_key=str(item.key),
                    schedule=schedule,
                    error=e.reason,
                )
                result.diagnostics.append(
                    ScheduleDiagnostic(key=item.key, schedule=schedule, error=str(e))
                )
                continue

            log.info("scheduling_import", import_key=str(item.key), schedule=schedule)
            result.entries.append(
                ScheduleEntry(
                    key=item.key,
                    schedule=schedule,
                    trigger=trigger,
                    callback=self._job_factory(item),
                )
            )

        log.info(
            "schedule_built",
            scheduled=len(result.entries),
            skipped=len(result.diagnostics),
        )
        return result
