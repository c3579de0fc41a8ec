"""Error taxonomy for the certificate synchronization controller."""

from cert_trust.models.resources import ObjectKey


class CertTrustError(Exception):
    """Base class for all controller errors."""


class ConfigurationError(CertTrustError):
    """Raised when configuration is invalid or missing."""


class StoreError(CertTrustError):
    """Raised when the resource store fails to serve a request."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class InvalidTriggerError(CertTrustError):
    """Raised when a schedule expression fails grammar validation."""

    def __init__(self, expression: str, reason: str):
        super().__init__(f"invalid schedule {expression!r}: {reason}")
        self.expression = expression
        self.reason = reason


class SyncError(CertTrustError):
    """Base class for failures that abort a single sync run."""

    def __init__(self, key: ObjectKey, message: str):
        super().__init__(message)
        self.key = key


class ExportNotFoundError(SyncError):
    """The referenced CertificateExport does not exist."""

    def __init__(self, key: ObjectKey):
        super().__init__(key, f"certificate export {key} not found")


class SourceNotFoundError(SyncError):
    """The source secret referenced by an export does not exist."""

    def __init__(self, key: ObjectKey):
        super().__init__(key, f"source secret {key} not found")


class WrongCredentialTypeError(SyncError):
    """The source secret exists but is not of type kubernetes.io/tls."""

    def __init__(self, key: ObjectKey, secret_type: str):
        super().__init__(
            key, f"source secret {key} must be type kubernetes.io/tls, got {secret_type!r}"
        )
        self.secret_type = secret_type


class StoreWriteError(SyncError):
    """Creating or updating the target secret failed."""


class StatusStampError(CertTrustError):
    """A best-effort status update failed. Never raised to sync callers."""

    def __init__(self, key: ObjectKey, cause: Exception):
        super().__init__(f"failed to stamp status on {key}: {cause}")
        self.key = key
        self.cause = cause
