"""Pydantic models for the exported/imported certificate resources and TLS secrets."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

CRD_GROUP = "cert.trust.flolive.io"
CRD_VERSION = "v1"

DEFAULT_SCHEDULE = "@every 1h"

SECRET_TYPE_TLS = "kubernetes.io/tls"
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"
CA_CERT_KEY = "ca.crt"


class ResourceKind(str, Enum):
    """Custom resource kinds managed by the controller."""

    EXPORT = "CertificateExport"
    IMPORT = "CertificateImport"

    @property
    def plural(self) -> str:
        return f"{self.value.lower()}s"


class ObjectKey(BaseModel):
    """Namespace-scoped identity of a Kubernetes object."""

    model_config = ConfigDict(frozen=True)

    namespace: str = Field(default=..., description="Namespace (zone) of the object")
    name: str = Field(default=..., description="Object name, unique within the namespace")

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


def parse_reference(default_namespace: str, ref: str) -> ObjectKey:
    """Resolve a ``namespace/name`` or bare ``name`` reference.

    A bare name resolves in ``default_namespace``. A qualified reference is
    split at the first ``/`` and its namespace wins regardless of the default.
    """
    if "/" in ref:
        namespace, name = ref.split("/", 1)
        return ObjectKey(namespace=namespace, name=name)
    return ObjectKey(namespace=default_namespace, name=ref)


class CertificateExport(BaseModel):
    """Declares that a TLS secret in its own namespace may be shared."""

    namespace: str = Field(default=..., description="Namespace of the export")
    name: str = Field(default=..., description="Export name")
    secret_ref: str = Field(default="", description="Name of a TLS secret in the same namespace")
    schedule: str | None = Field(default=None, description="Cron expression (informational)")
    last_sync_time: datetime | None = Field(
        default=None, description="Most recent successful verification"
    )

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    @property
    def secret_key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.secret_ref)


class CertificateImport(BaseModel):
    """Declares that a namespace wants a maintained copy of an export's secret."""

    namespace: str = Field(default=..., description="Namespace of the import")
    name: str = Field(default=..., description="Import name")
    from_export: str = Field(
        default="", description="Export reference, 'namespace/name' or bare 'name'"
    )
    target_secret: str = Field(
        default="", description="Secret to create/maintain in the import's namespace"
    )
    schedule: str | None = Field(default=None, description="Cron expression for refreshes")
    last_sync_time: datetime | None = Field(
        default=None, description="Most recent successful sync"
    )

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    @property
    def export_key(self) -> ObjectKey:
        return parse_reference(self.namespace, self.from_export)

    @property
    def target_key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.target_secret)

    def effective_schedule(self, default: str = DEFAULT_SCHEDULE) -> str:
        """Return the declared schedule, or ``default`` when none is set."""
        return self.schedule or default


class Secret(BaseModel):
    """A Kubernetes secret as seen by the controller."""

    namespace: str = Field(default=..., description="Secret namespace")
    name: str = Field(default=..., description="Secret name")
    type: str = Field(default="Opaque", description="Secret type marker")
    data: dict[str, bytes] = Field(default_factory=dict, description="Decoded payload")
    resource_version: str | None = Field(
        default=None, description="Optimistic concurrency token from the API server"
    )
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    @property
    def is_tls(self) -> bool:
        return self.type == SECRET_TYPE_TLS

    @property
    def has_ca(self) -> bool:
        return self.data.get(CA_CERT_KEY) is not None
