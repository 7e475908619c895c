"""Kubernetes RBAC compiled into a resource, entitlement and grant graph."""

__version__ = "0.1.0"
