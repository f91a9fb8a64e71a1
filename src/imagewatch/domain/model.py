"""Domain types for registry reconciliation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

type DigestTagMap = dict[str, str]
"""Digest -> tag. Insertion order follows tag enumeration order."""


class RegistryKind(StrEnum):
    DISTRIBUTION = "distribution"
    ECR = "ecr"

    @classmethod
    def parse(cls, value: str | None) -> RegistryKind:
        """Map configured registry types (including legacy names) onto a client flavour."""

        if value is None or not value.strip():
            return cls.DISTRIBUTION
        normalized = value.strip().lower()
        if normalized == cls.ECR:
            return cls.ECR
        if normalized in _DISTRIBUTION_ALIASES:
            return cls.DISTRIBUTION
        raise ValueError(f"Unsupported registry type: {value!r}")


_DISTRIBUTION_ALIASES = frozenset(
    {"distribution", "other", "docker-hub", "gcr", "artifact-registry", "generic"}
)


class SourceState(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RegistrySource:
    """One repository watched on behalf of a downstream pipeline."""

    correlation_id: int
    registry_url: str
    repository: str
    kind: RegistryKind = RegistryKind.DISTRIBUTION
    credentials_ref: str | None = None
    insecure: bool = False
    region: str | None = None

    def describe(self) -> str:
        return f"{self.registry_url}/{self.repository} (correlation_id={self.correlation_id})"


@dataclass(frozen=True, slots=True)
class TaggedImage:
    """A tag as reported by a registry, with its digest when the listing provides it."""

    tag: str
    digest: str | None = None


@dataclass(frozen=True, slots=True)
class RegistryCredentials:
    username: str
    password: str


@dataclass(eq=False)
class ArtifactRecord:
    """A digest already surfaced to the downstream pipeline for a correlation id."""

    digest: str
    correlation_id: int
    image: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: int | None = None


@dataclass(frozen=True, slots=True)
class NotificationPayload:
    image: str
    digest: str
    correlation_id: int

    def body(self) -> dict[str, str]:
        return {"image": self.image, "digest": self.digest}


@dataclass(slots=True)
class ReconciliationOutcome:
    """Result of reconciling one source during a single pass."""

    source: RegistrySource
    state: SourceState = SourceState.PENDING
    error: Exception | None = None
    candidates: int = 0
    notified: list[str] = field(default_factory=list)
    refused: list[str] = field(default_factory=list)
    notification_failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state is SourceState.SUCCEEDED

    @property
    def partial(self) -> bool:
        return self.ok and bool(self.notification_failures)


@dataclass(slots=True)
class PassReport:
    """Outcomes of one reconciliation pass, in configuration order."""

    outcomes: list[ReconciliationOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[ReconciliationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self) -> list[ReconciliationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.state is SourceState.FAILED]

    @property
    def notified(self) -> int:
        return sum(len(outcome.notified) for outcome in self.outcomes)
