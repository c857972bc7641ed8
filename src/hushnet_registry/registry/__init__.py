"""Registry domain: registration protocol, host resolution, health reconciliation, directory."""

from .directory import list_directory
from .health import HealthReconciler, TickReport
from .protocol import RegistrationProtocol, generate_nonce, parse_registration_payload
from .resolver import DnsHostResolver, HostResolver

__all__ = [
    "RegistrationProtocol",
    "generate_nonce",
    "parse_registration_payload",
    "HostResolver",
    "DnsHostResolver",
    "HealthReconciler",
    "TickReport",
    "list_directory",
]
