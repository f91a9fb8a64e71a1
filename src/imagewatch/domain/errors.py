"""Error taxonomy for reconciliation.

Every error carries enough context to be logged against the source it belongs to.
The loop turns any of them into a failed outcome for that source only;
``NotificationError`` never reaches the loop because the notifier absorbs it per
entry.
"""

from __future__ import annotations


class ReconcileError(RuntimeError):
    """Base class for errors raised while reconciling a source."""


class ImageReferenceError(ReconcileError):
    """Raised when a registry/repository reference is malformed or embeds a tag."""

    def __init__(self, message: str, *, reference: str) -> None:
        super().__init__(message)
        self.reference = reference


class RegistryCallError(ReconcileError):
    """Raised when a registry listing or digest lookup fails."""

    def __init__(self, message: str, *, repository: str, tag: str | None = None) -> None:
        super().__init__(message)
        self.repository = repository
        self.tag = tag


class RegistryAuthError(RegistryCallError):
    """Raised when the registry rejects the supplied credentials."""


class LedgerQueryError(ReconcileError):
    """Raised when the artifact ledger cannot be queried."""

    def __init__(self, message: str, *, correlation_id: int) -> None:
        super().__init__(message)
        self.correlation_id = correlation_id


class NotificationError(ReconcileError):
    """Raised when a single webhook notification cannot be delivered."""

    def __init__(self, message: str, *, digest: str, image: str) -> None:
        super().__init__(message)
        self.digest = digest
        self.image = image


class DeadlineExceededError(ReconcileError):
    """Raised when the pass deadline expires before an operation can start."""
