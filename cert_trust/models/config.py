"""Configuration models for the certificate synchronization controller."""

from apscheduler.util import astimezone
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cert_trust.models.resources import CRD_GROUP, CRD_VERSION, DEFAULT_SCHEDULE


class KubernetesConfig(BaseModel):
    """Configuration for the Kubernetes API connection."""

    in_cluster: bool = Field(
        default=False, description="Use the pod's service account instead of a kubeconfig"
    )
    kubeconfig: str | None = Field(
        default=None, description="Path to a kubeconfig file. If None, uses the default lookup."
    )
    context: str | None = Field(default=None, description="Kubeconfig context to activate")
    group: str = Field(default=CRD_GROUP, description="API group of the custom resources")
    version: str = Field(default=CRD_VERSION, description="API version of the custom resources")


class SchedulerConfig(BaseModel):
    """Configuration for the reschedule loop and job runner."""

    reschedule_interval_seconds: float = Field(
        default=60.0, gt=0, description="Period of the resource discovery loop"
    )
    immediate_on_start: bool = Field(
        default=True,
        description="Sync every import once after the first successful schedule build",
    )
    immediate_delay_seconds: float = Field(
        default=5.0, ge=0, description="Delay before the one-time startup sync"
    )
    timezone: str = Field(default="UTC", description="Timezone for cron expressions")
    default_schedule: str = Field(
        default=DEFAULT_SCHEDULE, description="Schedule used when an import declares none"
    )
    max_workers: int = Field(
        default=10, ge=1, le=100, description="Thread pool size for concurrent sync jobs"
    )
    misfire_grace_time: int = Field(
        default=60, ge=1, description="Seconds a late firing may still run"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names the scheduler cannot resolve."""
        try:
            astimezone(v)
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v!r}") from e
        return v

    @field_validator("default_schedule")
    @classmethod
    def validate_default_schedule(cls, v: str, info: ValidationInfo) -> str:
        """Reject a default schedule that no import could ever run on."""
        from cert_trust.errors import InvalidTriggerError
        from cert_trust.sync.triggers import validate_trigger

        # An invalid timezone is already reported by its own validator.
        timezone = info.data.get("timezone", "UTC")
        try:
            validate_trigger(v, timezone)
        except InvalidTriggerError as e:
            raise ValueError(str(e)) from e
        return v


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    Values can be supplied through environment variables with the
    ``CERT_TRUST_`` prefix, e.g. ``CERT_TRUST_SCHEDULER__IMMEDIATE_ON_START=false``.
    """

    model_config = SettingsConfigDict(
        env_prefix="CERT_TRUST_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
