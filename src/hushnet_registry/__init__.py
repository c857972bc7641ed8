# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""HushNet Registry - directory service for HushNet nodes.

Nodes prove control of an Ed25519 key to register their host, keep
themselves marked online with signed heartbeats, and are probed in the
background for health and approximate location. Consumers read the public
directory.

Architecture:
  identity  -> canonical JSON signing targets, Ed25519 verification
  storage   -> challenges and nodes behind one async store (memory or PostgreSQL)
  registry  -> registration protocol, host resolution, health reconciler, directory
  server    -> aiohttp API, error responses, CLI

CLI entry point: ``hushnet-registry``
"""

__version__ = "0.1.0"

from .client import RegistrationError, RegistryClient

__all__ = [
    "__version__",
    "RegistryClient",
    "RegistrationError",
]
