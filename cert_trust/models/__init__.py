"""Data models for the certificate synchronization controller."""

from cert_trust.models.resources import (
    CA_CERT_KEY,
    DEFAULT_SCHEDULE,
    SECRET_TYPE_TLS,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
    CertificateExport,
    CertificateImport,
    ObjectKey,
    ResourceKind,
    Secret,
    parse_reference,
)
from cert_trust.models.config import (
    AppConfig,
    KubernetesConfig,
    LoggingConfig,
    SchedulerConfig,
)

__all__ = [
    "CertificateExport",
    "CertificateImport",
    "ObjectKey",
    "ResourceKind",
    "Secret",
    "parse_reference",
    "DEFAULT_SCHEDULE",
    "SECRET_TYPE_TLS",
    "TLS_CERT_KEY",
    "TLS_PRIVATE_KEY_KEY",
    "CA_CERT_KEY",
    "AppConfig",
    "KubernetesConfig",
    "LoggingConfig",
    "SchedulerConfig",
]
