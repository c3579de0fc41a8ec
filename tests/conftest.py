"""Shared fixtures for controller tests."""

from datetime import datetime, timezone

import pytest

from cert_trust.models.resources import (
    CA_CERT_KEY,
    SECRET_TYPE_TLS,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
    CertificateExport,
    CertificateImport,
    Secret,
)
from cert_trust.store.memory import InMemoryResourceStore

FIXED_NOW = datetime(2024, 3, 1, 12, 30, 45, tzinfo=timezone.utc)


def make_tls_secret(
    namespace: str,
    name: str,
    cert: bytes = b"CERT",
    key: bytes = b"KEY",
    ca: bytes | None = None,
) -> Secret:
    data = {TLS_CERT_KEY: cert, TLS_PRIVATE_KEY_KEY: key}
    if ca is not None:
        data[CA_CERT_KEY] = ca
    return Secret(namespace=namespace, name=name, type=SECRET_TYPE_TLS, data=data)


@pytest.fixture
def store() -> InMemoryResourceStore:
    return InMemoryResourceStore()


@pytest.fixture
def seeded_store(store: InMemoryResourceStore) -> InMemoryResourceStore:
    """Store with one export ``shared/web-tls`` over secret ``shared/web-cert``
    and one import ``team-a/web`` that copies it into ``team-a/web-tls``."""
    store.put_secret(make_tls_secret("shared", "web-cert", ca=b"CA"))
    store.put_export(CertificateExport(namespace="shared", name="web-tls", secret_ref="web-cert"))
    store.put_import(
        CertificateImport(
            namespace="team-a",
            name="web",
            from_export="shared/web-tls",
            target_secret="web-tls",
        )
    )
    return store


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def tls_secret():
    return make_tls_secret
