"""Port for reading tags and digests from a container registry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from imagewatch.domain.model import RegistrySource, TaggedImage
    from imagewatch.domain.reconciliation.deadline import Deadline
    from imagewatch.domain.references import RepositoryReference


@runtime_checkable
class RegistryClient(Protocol):
    """Registry flavour normalised to ordered ``TaggedImage`` sequences.

    ``reference`` validates the configured repository and names the host that
    downstream image references use; it raises ``ImageReferenceError`` without
    touching the network. ``list_tags`` returns tags in the registry's own
    order. Implementations that learn digests while listing set
    ``TaggedImage.digest``; others leave it ``None`` and answer
    ``resolve_digest`` per tag.
    """

    def reference(self, source: RegistrySource) -> RepositoryReference: ...

    def list_tags(self, source: RegistrySource, *, deadline: Deadline) -> list[TaggedImage]: ...

    def resolve_digest(self, source: RegistrySource, tag: str, *, deadline: Deadline) -> str: ...
