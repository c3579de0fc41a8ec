"""Resource store clients."""

from cert_trust.store.base import ResourceStore, StoreError
from cert_trust.store.memory import InMemoryResourceStore

__all__ = ["InMemoryResourceStore", "ResourceStore", "StoreError"]
