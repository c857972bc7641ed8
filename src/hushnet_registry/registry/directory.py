# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Read-only node directory for consumers."""

from __future__ import annotations

from typing import Any

from ..storage.backend import RegistryStore
from ..storage.models import directory_sort_key


async def list_directory(store: RegistryStore) -> list[dict[str, Any]]:
    """All registered nodes, online first, then alphabetically by name.

    The store already returns this order; sorting again keeps the contract
    independent of the backend.
    """
    nodes = await store.list_nodes()
    nodes.sort(key=directory_sort_key)
    return [node.to_public_dict() for node in nodes]
