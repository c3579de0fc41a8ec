"""Resource store protocol consumed by the scheduler and sync executor."""

from typing import Any, Protocol, runtime_checkable

from cert_trust.errors import StoreError
from cert_trust.models.resources import (
    CertificateExport,
    CertificateImport,
    ObjectKey,
    ResourceKind,
    Secret,
)

__all__ = ["ResourceStore", "StoreError"]


@runtime_checkable
class ResourceStore(Protocol):
    """Read/write access to exports, imports and secrets.

    Lookups return ``None`` when the object does not exist. Any other failure
    is raised as ``StoreError``. No transactional guarantees hold across calls.
    """

    def list_exports(self) -> list[CertificateExport]: ...

    def list_imports(self) -> list[CertificateImport]: ...

    def get_export(self, key: ObjectKey) -> CertificateExport | None: ...

    def get_secret(self, key: ObjectKey) -> Secret | None: ...

    def create_secret(self, secret: Secret) -> Secret: ...

    def update_secret(self, secret: Secret) -> Secret: ...

    def update_status(self, kind: ResourceKind, key: ObjectKey, status: dict[str, Any]) -> None: ...
