"""Domain port definitions for adapters."""

from __future__ import annotations

from .credentials import CredentialProvider
from .ledger import ArtifactLedger
from .notification import NotificationSink
from .registry import RegistryClient

__all__ = [
    "ArtifactLedger",
    "CredentialProvider",
    "NotificationSink",
    "RegistryClient",
]
