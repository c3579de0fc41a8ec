"""Scheduled synchronization of TLS secrets across Kubernetes namespaces."""

__version__ = "0.1.0"
