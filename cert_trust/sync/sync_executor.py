"""Execution of export verification and import sync against the resource store."""

from datetime import datetime, timezone
from typing import Callable

import structlog

from cert_trust.errors import (
    ExportNotFoundError,
    SourceNotFoundError,
    StatusStampError,
    StoreError,
    StoreWriteError,
    WrongCredentialTypeError,
)
from cert_trust.models.resources import (
    CA_CERT_KEY,
    SECRET_TYPE_TLS,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
    ObjectKey,
    ResourceKind,
    Secret,
    parse_reference,
)
from cert_trust.store.base import ResourceStore
from cert_trust.sync.models import SyncAction, SyncResult

log = structlog.stdlib.get_logger()

RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncExecutor:
    """Performs the read-validate-write sequence for exports and imports.

    References are resolved and the source secret is re-read on every call;
    nothing is cached between runs.
    """

    def __init__(self, store: ResourceStore, clock: Callable[[], datetime] = _utcnow):
        """
        Initialize the sync executor.

        Args:
            store: Resource store client
            clock: Source of the current UTC time, used for status stamps
        """
        self._store = store
        self._clock = clock

    def sync_export(self, namespace: str, name: str, secret_ref: str) -> SyncResult:
        """
        Verify that an export's source secret exists and is TLS-typed.

        Args:
            namespace: Namespace of the export
            name: Name of the export
            secret_ref: Name of the source secret in the same namespace

        Returns:
            SyncResult with action ``verified``

        Raises:
            SourceNotFoundError: If the source secret does not exist
            WrongCredentialTypeError: If the source secret is not kubernetes.io/tls
            StoreError: If the store cannot be read
        """
        export_key = ObjectKey(namespace=namespace, name=name)
        source = self._read_source(ObjectKey(namespace=namespace, name=secret_ref))

        log.info(
            "export_sync_completed",
            export_key=str(export_key),
            secret_ref=secret_ref,
            secret_type=source.type,
        )

        synced_at = self._clock()
        stamped = self._stamp_status(ResourceKind.EXPORT, export_key, synced_at)

        return SyncResult(
            kind=ResourceKind.EXPORT,
            key=export_key,
            action=SyncAction.VERIFIED,
            synced_at=synced_at,
            status_stamped=stamped,
        )

    def sync_import(
        self, namespace: str, name: str, from_export: str, target_secret: str
    ) -> SyncResult:
        """
        Copy an export's TLS secret into the import's namespace.

        The target secret gets ``tls.crt`` and ``tls.key`` overwritten on every
        run; ``ca.crt`` mirrors the source exactly and is removed from the
        target when the source has none. Other keys on the target are kept.

        Args:
            namespace: Namespace of the import (and of the target secret)
            name: Name of the import
            from_export: Export reference, ``namespace/name`` or bare ``name``
            target_secret: Name of the secret to create or update

        Returns:
            SyncResult with action ``created`` or ``updated``

        Raises:
            ExportNotFoundError: If the referenced export does not exist
            SourceNotFoundError: If the export's secret does not exist
            WrongCredentialTypeError: If the export's secret is not kubernetes.io/tls
            StoreWriteError: If creating or updating the target secret fails
            StoreError: If the store cannot be read
        """
        import_key = ObjectKey(namespace=namespace, name=name)
        export_key = parse_reference(namespace, from_export)

        export = self._store.get_export(export_key) if export_key.name else None
        if export is None:
            log.error(
                "failed_to_get_export", import_key=str(import_key), export_key=str(export_key)
            )
            raise ExportNotFoundError(export_key)

        source = self._read_source(ObjectKey(namespace=export.namespace, name=export.secret_ref))

        log.info(
            "source_secret_found",
            import_key=str(import_key),
            secret_ref=export.secret_ref,
            namespace=export.namespace,
            has_tls_crt=TLS_CERT_KEY in source.data,
            has_tls_key=TLS_PRIVATE_KEY_KEY in source.data,
            has_ca_crt=source.has_ca,
        )

        target_key = ObjectKey(namespace=namespace, name=target_secret)
        action = self._upsert_target(import_key, target_key, source)

        synced_at = self._clock()
        stamped = self._stamp_status(ResourceKind.IMPORT, import_key, synced_at)

        return SyncResult(
            kind=ResourceKind.IMPORT,
            key=import_key,
            action=action,
            target=target_key,
            synced_at=synced_at,
            status_stamped=stamped,
        )

    def _read_source(self, key: ObjectKey) -> Secret:
        source = self._store.get_secret(key) if key.name else None
        if source is None:
            log.error("failed_to_get_source_secret", secret=str(key))
            raise SourceNotFoundError(key)
        if not source.is_tls:
            log.error("source_secret_must_be_tls", secret=str(key), secret_type=source.type)
            raise WrongCredentialTypeError(key, source.type)
        return source

    def _upsert_target(
        self, import_key: ObjectKey, target_key: ObjectKey, source: Secret
    ) -> SyncAction:
        target = self._store.get_secret(target_key)

        if target is None:
            data = {
                TLS_CERT_KEY: source.data.get(TLS_CERT_KEY, b""),
                TLS_PRIVATE_KEY_KEY: source.data.get(TLS_PRIVATE_KEY_KEY, b""),
            }
            if source.has_ca:
                data[CA_CERT_KEY] = source.data[CA_CERT_KEY]

            secret = Secret(
                namespace=target_key.namespace,
                name=target_key.name,
                type=SECRET_TYPE_TLS,
                data=data,
            )
            try:
                self._store.create_secret(secret)
            except StoreError as e:
                log.error(
                    "failed_to_create_target_secret",
                    import_key=str(import_key),
                    target_secret=str(target_key),
                    error=str(e),
                )
                raise StoreWriteError(import_key, f"failed to create {target_key}: {e}") from e

            log.info(
                "created_target_secret",
                import_key=str(import_key),
                target_secret=str(target_key),
            )
            return SyncAction.CREATED

        data = dict(target.data)
        data[TLS_CERT_KEY] = source.data.get(TLS_CERT_KEY, b"")
        data[TLS_PRIVATE_KEY_KEY] = source.data.get(TLS_PRIVATE_KEY_KEY, b"")
        if source.has_ca:
            data[CA_CERT_KEY] = source.data[CA_CERT_KEY]
        else:
            data.pop(CA_CERT_KEY, None)

        updated = target.model_copy(update={"type": SECRET_TYPE_TLS, "data": data})
        try:
            self._store.update_secret(updated)
        except StoreError as e:
            log.error(
                "failed_to_update_target_secret",
                import_key=str(import_key),
                target_secret=str(target_key),
                error=str(e),
            )
            raise StoreWriteError(import_key, f"failed to update {target_key}: {e}") from e

        log.info(
            "updated_target_secret",
            import_key=str(import_key),
            target_secret=str(target_key),
        )
        return SyncAction.UPDATED

    def _stamp_status(self, kind: ResourceKind, key: ObjectKey, synced_at: datetime) -> bool:
        """Advisory write of ``status.lastSyncTime``; failures are logged, never raised."""
        try:
            self._store.update_status(
                kind, key, {"lastSyncTime": synced_at.strftime(RFC3339_FORMAT)}
            )
        except StoreError as e:
            log.warning(
                "status_update_failed",
                kind=kind.value,
                key=str(key),
                error=str(StatusStampError(key, e)),
            )
            return False
        return True
