"""In-memory resource store used for tests and local dry runs."""

import threading
from collections import Counter
from typing import Any

import structlog

from cert_trust.errors import StoreError
from cert_trust.models.resources import (
    CertificateExport,
    CertificateImport,
    ObjectKey,
    ResourceKind,
    Secret,
)

log = structlog.stdlib.get_logger()


class InMemoryResourceStore:
    """Thread-safe dict-backed store.

    Every public operation increments ``calls[<operation>]`` so callers can
    assert how much store traffic a code path produced. Objects are copied on
    the way in and out; callers never share state with the store.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._exports: dict[ObjectKey, CertificateExport] = {}
        self._imports: dict[ObjectKey, CertificateImport] = {}
        self._secrets: dict[ObjectKey, Secret] = {}
        self._statuses: dict[tuple[ResourceKind, ObjectKey], dict[str, Any]] = {}
        self._resource_version = 0
        self.calls: Counter[str] = Counter()

    # Seeding helpers

    def put_export(self, export: CertificateExport) -> None:
        with self._lock:
            self._exports[export.key] = export.model_copy(deep=True)

    def put_import(self, certificate_import: CertificateImport) -> None:
        with self._lock:
            self._imports[certificate_import.key] = certificate_import.model_copy(deep=True)

    def put_secret(self, secret: Secret) -> None:
        with self._lock:
            self._secrets[secret.key] = self._versioned(secret)

    def delete_export(self, key: ObjectKey) -> None:
        with self._lock:
            self._exports.pop(key, None)

    def delete_import(self, key: ObjectKey) -> None:
        with self._lock:
            self._imports.pop(key, None)

    def status_of(self, kind: ResourceKind, key: ObjectKey) -> dict[str, Any]:
        """Return the last status written for an object (empty if none)."""
        with self._lock:
            return dict(self._statuses.get((kind, key), {}))

    # ResourceStore protocol

    def list_exports(self) -> list[CertificateExport]:
        with self._lock:
            self.calls["list_exports"] += 1
            return [e.model_copy(deep=True) for e in self._exports.values()]

    def list_imports(self) -> list[CertificateImport]:
        with self._lock:
            self.calls["list_imports"] += 1
            return [i.model_copy(deep=True) for i in self._imports.values()]

    def get_export(self, key: ObjectKey) -> CertificateExport | None:
        with self._lock:
            self.calls["get_export"] += 1
            export = self._exports.get(key)
            return export.model_copy(deep=True) if export else None

    def get_secret(self, key: ObjectKey) -> Secret | None:
        with self._lock:
            self.calls["get_secret"] += 1
            secret = self._secrets.get(key)
            return secret.model_copy(deep=True) if secret else None

    def create_secret(self, secret: Secret) -> Secret:
        with self._lock:
            self.calls["create_secret"] += 1
            if secret.key in self._secrets:
                raise StoreError(f"secret {secret.key} already exists", status=409)
            stored = self._versioned(secret)
            self._secrets[secret.key] = stored
            log.debug("memory_store_secret_created", secret=str(secret.key))
            return stored.model_copy(deep=True)

    def update_secret(self, secret: Secret) -> Secret:
        with self._lock:
            self.calls["update_secret"] += 1
            current = self._secrets.get(secret.key)
            if current is None:
                raise StoreError(f"secret {secret.key} not found", status=404)
            if secret.resource_version and secret.resource_version != current.resource_version:
                raise StoreError(f"secret {secret.key} was modified concurrently", status=409)
            stored = self._versioned(secret)
            self._secrets[secret.key] = stored
            log.debug("memory_store_secret_updated", secret=str(secret.key))
            return stored.model_copy(deep=True)

    def update_status(self, kind: ResourceKind, key: ObjectKey, status: dict[str, Any]) -> None:
        with self._lock:
            self.calls["update_status"] += 1
            objects = self._exports if kind is ResourceKind.EXPORT else self._imports
            if key not in objects:
                raise StoreError(f"{kind.value} {key} not found", status=404)
            self._statuses.setdefault((kind, key), {}).update(status)

    def _versioned(self, secret: Secret) -> Secret:
        self._resource_version += 1
        return secret.model_copy(
            deep=True, update={"resource_version": str(self._resource_version)}
        )
