"""Change detection for skipping redundant schedule rebuilds."""

import hashlib

import structlog
from pydantic import BaseModel, ConfigDict, Field

from cert_trust.models.resources import CertificateExport, CertificateImport

log = structlog.stdlib.get_logger()


class ResourceFingerprint(BaseModel):
    """Summary of the export/import declarations a job table was built from."""

    model_config = ConfigDict(frozen=True)

    export_count: int = Field(default=..., ge=0)
    import_count: int = Field(default=..., ge=0)
    resource_hash: str = Field(default=..., description="SHA-256 over the relevant fields")


class ChangeDetector:
    """Decides whether the declared resources changed since the last build.

    The fingerprint is a cache key only. An unchanged fingerprint means the
    job table need not be rebuilt; it says nothing about whether the
    referenced exports and secrets still exist.
    """

    def __init__(self) -> None:
        self._last_built: ResourceFingerprint | None = None

    @property
    def last_built(self) -> ResourceFingerprint | None:
        return self._last_built

    @staticmethod
    def fingerprint(
        exports: list[CertificateExport], imports: list[CertificateImport]
    ) -> ResourceFingerprint:
        """
        Compute the fingerprint of a set of exports and imports.

        Resources are ordered by (namespace, name) first, so the same set yields
        the same fingerprint whatever order the store listed them in.

        Args:
            exports: Current CertificateExports
            imports: Current CertificateImports

        Returns:
            ResourceFingerprint for the set
        """
        parts: list[str] = []

        for export in sorted(exports, key=lambda e: (e.namespace, e.name)):
            parts.append(f"export:{export.namespace}/{export.name}:")
            parts.append(f"secretRef:{export.secret_ref}:")

        for item in sorted(imports, key=lambda i: (i.namespace, i.name)):
            parts.append(f"import:{item.namespace}/{item.name}:")
            parts.append(f"fromExport:{item.from_export}:")
            parts.append(f"targetSecret:{item.target_secret}:")
            parts.append(f"schedule:{item.schedule or ''}:")

        digest = hashlib.sha256("".join(parts).encode("utf-8")).hexdigest()

        return ResourceFingerprint(
            export_count=len(exports),
            import_count=len(imports),
            resource_hash=digest,
        )

    def has_changed(self, fingerprint: ResourceFingerprint) -> bool:
        """Check whether ``fingerprint`` differs from the last recorded build."""
        changed = fingerprint != self._last_built
        if not changed:
            log.debug(
                "resources_unchanged",
                export_count=fingerprint.export_count,
                import_count=fingerprint.import_count,
            )
        return changed

    def mark_built(self, fingerprint: ResourceFingerprint) -> None:
        self._last_built = fingerprint

    def reset(self) -> None:
        """Forget the last build so the next check reports a change."""
        self._last_built = None
