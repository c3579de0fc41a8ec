"""Kubernetes-backed resource store using the official Python client."""

import base64
from datetime import datetime
from typing import Any

import structlog
import urllib3
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException

from cert_trust.errors import StoreError
from cert_trust.models.config import KubernetesConfig
from cert_trust.models.resources import (
    CertificateExport,
    CertificateImport,
    ObjectKey,
    ResourceKind,
    Secret,
)
from cert_trust.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

_TRANSIENT_ERRORS = (ApiException, urllib3.exceptions.HTTPError)


def _is_transient(error: Exception) -> bool:
    """Connection failures, throttling and server errors are worth retrying."""
    if isinstance(error, ApiException):
        return error.status in (None, 0, 429) or error.status >= 500
    return True


def _is_not_found(error: Exception) -> bool:
    return isinstance(error, ApiException) and error.status == 404


def _store_error(action: str, error: Exception) -> StoreError:
    status = error.status if isinstance(error, ApiException) else None
    reason = getattr(error, "reason", None) or str(error)
    return StoreError(f"failed to {action}: {reason}", status=status)


def _get_string(obj: dict[str, Any], path: str) -> str:
    """Read a dotted path from an unstructured object, '' when absent or not a string."""
    cur: Any = obj
    for part in path.split("."):
        if not isinstance(cur, dict):
            return ""
        cur = cur.get(part)
    return cur if isinstance(cur, str) else ""


def _parse_time(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        log.warning("failed_to_parse_last_sync_time", value=value)
        return None


class KubernetesResourceStore:
    """Wrapper around CustomObjectsApi/CoreV1Api for exports, imports and secrets."""

    def __init__(
        self,
        config: KubernetesConfig | None = None,
        custom_api: k8s_client.CustomObjectsApi | None = None,
        core_api: k8s_client.CoreV1Api | None = None,
    ):
        """
        Initialize the store.

        Args:
            config: Connection settings; defaults to kubeconfig lookup
            custom_api: Optional pre-built CustomObjectsApi (skips config loading)
            core_api: Optional pre-built CoreV1Api (skips config loading)
        """
        self._config = config or KubernetesConfig()

        if custom_api is None or core_api is None:
            self._load_client_config()

        self._custom_api = custom_api or k8s_client.CustomObjectsApi()
        self._core_api = core_api or k8s_client.CoreV1Api()

        log.info(
            "kubernetes_store_initialized",
            group=self._config.group,
            version=self._config.version,
            in_cluster=self._config.in_cluster,
        )

    def _load_client_config(self) -> None:
        try:
            if self._config.in_cluster:
                k8s_config.load_incluster_config()
            else:
                k8s_config.load_kube_config(
                    config_file=self._config.kubeconfig, context=self._config.context
                )
        except k8s_config.ConfigException as e:
            log.error("failed_to_load_kubernetes_config", error=str(e))
            raise StoreError(f"failed to load Kubernetes configuration: {e}") from e

    # Listing

    def list_exports(self) -> list[CertificateExport]:
        items = self._list_custom_objects(ResourceKind.EXPORT)
        exports = []
        for item in items:
            try:
                exports.append(self._convert_to_export(item))
            except ValueError as e:
                log.warning("failed_to_convert_export", error=str(e))
        log.info("found_certificate_exports", count=len(exports))
        return exports

    def list_imports(self) -> list[CertificateImport]:
        items = self._list_custom_objects(ResourceKind.IMPORT)
        imports = []
        for item in items:
            try:
                imports.append(self._convert_to_import(item))
            except ValueError as e:
                log.warning("failed_to_convert_import", error=str(e))
        log.info("found_certificate_imports", count=len(imports))
        return imports

    def _list_custom_objects(self, kind: ResourceKind) -> list[dict[str, Any]]:
        try:
            response = self._list_cluster_custom_object(kind.plural)
        except _TRANSIENT_ERRORS as e:
            log.error("failed_to_list_custom_objects", kind=kind.value, error=str(e))
            raise _store_error(f"list {kind.value}s", e) from e
        return list(response.get("items", []))

    @exponential_backoff_retry(
        max_retries=3,
        base_delay=1.0,
        max_delay=30.0,
        exceptions=_TRANSIENT_ERRORS,
        retry_if=_is_transient,
    )
    def _list_cluster_custom_object(self, plural: str) -> dict[str, Any]:
        return self._custom_api.list_cluster_custom_object(
            group=self._config.group, version=self._config.version, plural=plural
        )

    # Lookups

    def get_export(self, key: ObjectKey) -> CertificateExport | None:
        try:
            obj = self._get_namespaced_custom_object(ResourceKind.EXPORT.plural, key)
        except _TRANSIENT_ERRORS as e:
            if _is_not_found(e):
                return None
            log.error("failed_to_get_export", export_key=str(key), error=str(e))
            raise _store_error(f"get CertificateExport {key}", e) from e
        return self._convert_to_export(obj)

    @exponential_backoff_retry(
        max_retries=3,
        base_delay=1.0,
        max_delay=30.0,
        exceptions=_TRANSIENT_ERRORS,
        retry_if=_is_transient,
    )
    def _get_namespaced_custom_object(self, plural: str, key: ObjectKey) -> dict[str, Any]:
        return self._custom_api.get_namespaced_custom_object(
            group=self._config.group,
            version=self._config.version,
            namespace=key.namespace,
            plural=plural,
            name=key.name,
        )

    def get_secret(self, key: ObjectKey) -> Secret | None:
        try:
            raw = self._read_namespaced_secret(key)
        except _TRANSIENT_ERRORS as e:
            if _is_not_found(e):
                return None
            log.error("failed_to_get_secret", secret=str(key), error=str(e))
            raise _store_error(f"get secret {key}", e) from e
        return self._convert_to_secret(raw)

    @exponential_backoff_retry(
        max_retries=3,
        base_delay=1.0,
        max_delay=30.0,
        exceptions=_TRANSIENT_ERRORS,
        retry_if=_is_transient,
    )
    def _read_namespaced_secret(self, key: ObjectKey) -> k8s_client.V1Secret:
        return self._core_api.read_namespaced_secret(name=key.name, namespace=key.namespace)

    # Writes

    def create_secret(self, secret: Secret) -> Secret:
        try:
            raw = self._core_api.create_namespaced_secret(
                namespace=secret.namespace, body=self._convert_from_secret(secret)
            )
        except _TRANSIENT_ERRORS as e:
            raise _store_error(f"create secret {secret.key}", e) from e
        return self._convert_to_secret(raw)

    def update_secret(self, secret: Secret) -> Secret:
        try:
            raw = self._core_api.replace_namespaced_secret(
                name=secret.name,
                namespace=secret.namespace,
                body=self._convert_from_secret(secret),
            )
        except _TRANSIENT_ERRORS as e:
            raise _store_error(f"update secret {secret.key}", e) from e
        return self._convert_to_secret(raw)

    def update_status(self, kind: ResourceKind, key: ObjectKey, status: dict[str, Any]) -> None:
        try:
            self._custom_api.patch_namespaced_custom_object_status(
                group=self._config.group,
                version=self._config.version,
                namespace=key.namespace,
                plural=kind.plural,
                name=key.name,
                body={"status": status},
            )
        except _TRANSIENT_ERRORS as e:
            raise _store_error(f"update status of {kind.value} {key}", e) from e

    # Conversion

    def _convert_to_export(self, obj: dict[str, Any]) -> CertificateExport:
        metadata = obj.get("metadata") or {}
        if not metadata.get("name") or not metadata.get("namespace"):
            raise ValueError("CertificateExport is missing metadata.name or metadata.namespace")

        return CertificateExport(
            namespace=metadata["namespace"],
            name=metadata["name"],
            secret_ref=_get_string(obj, "spec.secretRef"),
            schedule=_get_string(obj, "spec.schedule") or None,
            last_sync_time=_parse_time(_get_string(obj, "status.lastSyncTime")),
        )

    def _convert_to_import(self, obj: dict[str, Any]) -> CertificateImport:
        metadata = obj.get("metadata") or {}
        if not metadata.get("name") or not metadata.get("namespace"):
            raise ValueError("CertificateImport is missing metadata.name or metadata.namespace")

        return CertificateImport(
            namespace=metadata["namespace"],
            name=metadata["name"],
            from_export=_get_string(obj, "spec.fromExport"),
            target_secret=_get_string(obj, "spec.targetSecret"),
            schedule=_get_string(obj, "spec.schedule") or None,
            last_sync_time=_parse_time(_get_string(obj, "status.lastSyncTime")),
        )

    def _convert_to_secret(self, raw: k8s_client.V1Secret) -> Secret:
        metadata = raw.metadata
        data = {
            name: base64.b64decode(value)
            for name, value in (raw.data or {}).items()
            if value is not None
        }
        return Secret(
            namespace=metadata.namespace,
            name=metadata.name,
            type=raw.type or "Opaque",
            data=data,
            resource_version=metadata.resource_version,
            labels=metadata.labels or {},
            annotations=metadata.annotations or {},
        )

    def _convert_from_secret(self, secret: Secret) -> k8s_client.V1Secret:
        return k8s_client.V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=k8s_client.V1ObjectMeta(
                name=secret.name,
                namespace=secret.namespace,
                resource_version=secret.resource_version,
                labels=secret.labels or None,
                annotations=secret.annotations or None,
            ),
            type=secret.type,
            data={
                name: base64.b64encode(value).decode("ascii")
                for name, value in secret.data.items()
            },
        )
