"""Object store implementations."""

from .base import ObjectStore
from .kube import KubernetesObjectStore
from .memory import InMemoryObjectStore

__all__ = ["InMemoryObjectStore", "KubernetesObjectStore", "ObjectStore"]
