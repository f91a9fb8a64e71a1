"""Per-source reconciliation and the pass loop over all configured sources."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

from imagewatch.domain.errors import ReconcileError
from imagewatch.domain.model import (
    ArtifactRecord,
    PassReport,
    ReconciliationOutcome,
    SourceState,
)

from .deadline import Deadline
from .dedup import filter_known
from .digests import resolve_digests
from .notify import dispatch_notifications
from .window import DEFAULT_TAG_WINDOW, select_tag_window

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from imagewatch.domain.model import RegistryKind, RegistrySource
    from imagewatch.domain.ports.ledger import ArtifactLedger
    from imagewatch.domain.ports.notification import NotificationSink
    from imagewatch.domain.ports.registry import RegistryClient

    from .notify import NotificationReport

log = getLogger(__name__)

MAX_SOURCE_WORKERS: Final[int] = 8


@dataclass(slots=True)
class SourceReconciler:
    """Run list -> window -> digests -> dedup -> notify for one source."""

    clients: Mapping[RegistryKind, RegistryClient]
    ledger: ArtifactLedger
    sink: NotificationSink
    max_tags: int = DEFAULT_TAG_WINDOW
    digest_workers: int = 1
    record_notified: bool = False

    def reconcile_source(
        self,
        source: RegistrySource,
        *,
        deadline: Deadline | None = None,
    ) -> ReconciliationOutcome:
        """Reconcile ``source`` and describe what happened.

        Errors of the reconciliation taxonomy end in a ``failed`` outcome rather
        than an exception, so a caller can always move on to the next source.
        """

        outcome = ReconciliationOutcome(source=source, state=SourceState.IN_PROGRESS)
        active_deadline = deadline or Deadline.none()
        try:
            self._run(source, outcome, deadline=active_deadline)
        except ReconcileError as exc:
            log.error(
                "Reconciliation failed: correlation_id=%s, repository=%s, registry=%s, "
                "error=%s: %s",
                source.correlation_id,
                source.repository,
                source.registry_url,
                type(exc).__name__,
                exc,
            )
            outcome.state = SourceState.FAILED
            outcome.error = exc
            return outcome

        outcome.state = SourceState.SUCCEEDED
        return outcome

    def _run(
        self,
        source: RegistrySource,
        outcome: ReconciliationOutcome,
        *,
        deadline: Deadline,
    ) -> None:
        client = self._client_for(source)
        reference = client.reference(source)

        deadline.check(f"listing tags of {reference.name}")
        listed = client.list_tags(source, deadline=deadline)
        window = select_tag_window(listed, self.max_tags)
        log.debug(f"{reference.name}: {len(listed)} tags listed, {len(window)} selected")

        digest_tag_map = resolve_digests(
            source, window, client, deadline=deadline, max_workers=self.digest_workers
        )
        outcome.candidates = len(digest_tag_map)

        deadline.check(f"querying the ledger for {reference.name}")
        fresh = filter_known(digest_tag_map, source.correlation_id, self.ledger)

        report = dispatch_notifications(
            source,
            fresh,
            self.sink,
            host=reference.host,
            repository=reference.repository,
            deadline=deadline,
        )
        outcome.notified = [payload.digest for payload in report.sent]
        outcome.refused = [payload.digest for payload in report.refused]
        outcome.notification_failures = dict(report.failed)
        if self.record_notified:
            self._record(source, report)
        if report.interrupted is not None:
            raise report.interrupted

    def _client_for(self, source: RegistrySource) -> RegistryClient:
        try:
            return self.clients[source.kind]
        except KeyError:
            raise ReconcileError(f"No registry client configured for {source.kind}") from None

    def _record(self, source: RegistrySource, report: NotificationReport) -> None:
        for payload in report.accepted:
            try:
                self.ledger.add(
                    ArtifactRecord(
                        digest=payload.digest,
                        correlation_id=source.correlation_id,
                        image=payload.image,
                    )
                )
            except ReconcileError as exc:
                log.error(
                    "Could not record notified artifact: correlation_id=%s, digest=%s, error=%s",
                    source.correlation_id,
                    payload.digest,
                    exc,
                )


@dataclass(slots=True)
class ReconciliationLoop:
    """One pass over every configured source, isolating failures per source."""

    reconciler: SourceReconciler
    sources: Sequence[RegistrySource] = field(default_factory=tuple)
    pass_timeout_seconds: float | None = None
    max_workers: int = 1

    def run_pass(self) -> PassReport:
        if not self.sources:
            log.error("No registry sources configured; nothing to reconcile")
            return PassReport()

        deadline = Deadline.after(self.pass_timeout_seconds)
        log.info(f"Reconciliation pass started for {len(self.sources)} source(s)")
        if self.max_workers > 1 and len(self.sources) > 1:
            workers = min(self.max_workers, MAX_SOURCE_WORKERS, len(self.sources))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="source") as executor:
                outcomes = list(
                    executor.map(lambda source: self._isolated(source, deadline), self.sources)
                )
        else:
            outcomes = [self._isolated(source, deadline) for source in self.sources]

        report = PassReport(outcomes=outcomes)
        log.info(
            f"Reconciliation pass finished: succeeded={len(report.succeeded)}, "
            f"failed={len(report.failed)}, notified={report.notified}"
        )
        return report

    def _isolated(self, source: RegistrySource, deadline: Deadline) -> ReconciliationOutcome:
        try:
            return self.reconciler.reconcile_source(source, deadline=deadline)
        except Exception as exc:  # noqa: BLE001
            log.exception(f"Unexpected error while reconciling {source.describe()}")
            return ReconciliationOutcome(source=source, state=SourceState.FAILED, error=exc)
