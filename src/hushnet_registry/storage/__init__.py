"""Registry persistence: challenge and node rows behind one async store interface."""

from .backend import MemoryRegistryStore, RegistryStore, create_store
from .models import (
    Challenge,
    Node,
    NodeRegistration,
    NodeStatus,
    ProbeObservation,
)

__all__ = [
    "RegistryStore",
    "MemoryRegistryStore",
    "create_store",
    "Challenge",
    "Node",
    "NodeRegistration",
    "NodeStatus",
    "ProbeObservation",
]
