"""Announce new artifacts to the notification sink, one call per digest."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from imagewatch.domain.errors import DeadlineExceededError, NotificationError
from imagewatch.domain.model import NotificationPayload
from imagewatch.domain.references import image_reference

if TYPE_CHECKING:
    from imagewatch.domain.model import DigestTagMap, RegistrySource
    from imagewatch.domain.ports.notification import NotificationSink

    from .deadline import Deadline

log = getLogger(__name__)


@dataclass(slots=True)
class NotificationReport:
    """What happened to each payload of one batch.

    ``sent`` holds every delivered payload, ``refused`` the delivered ones the
    receiver did not accept. ``interrupted`` is set when the deadline expired
    before the batch was done.
    """

    sent: list[NotificationPayload] = field(default_factory=list)
    refused: list[NotificationPayload] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    interrupted: DeadlineExceededError | None = None

    @property
    def accepted(self) -> list[NotificationPayload]:
        return [payload for payload in self.sent if payload not in self.refused]


def build_payload(
    source: RegistrySource,
    *,
    host: str,
    repository: str,
    digest: str,
    tag: str,
) -> NotificationPayload:
    return NotificationPayload(
        image=image_reference(host, repository, tag),
        digest=digest,
        correlation_id=source.correlation_id,
    )


def dispatch_notifications(
    source: RegistrySource,
    digest_tag_map: DigestTagMap,
    sink: NotificationSink,
    *,
    host: str,
    repository: str,
    deadline: Deadline,
) -> NotificationReport:
    """Notify ``sink`` once per entry; one failed delivery never blocks the rest.

    An expired deadline stops the batch; the report keeps what was sent so far.
    """

    report = NotificationReport()
    for digest, tag in digest_tag_map.items():
        payload = build_payload(source, host=host, repository=repository, digest=digest, tag=tag)
        try:
            deadline.check(f"notifying {payload.image}")
            accepted = sink.notify(payload, deadline=deadline)
        except DeadlineExceededError as exc:
            log.error(
                "Notification batch interrupted: correlation_id=%s, repository=%s, "
                "pending=%s, error=%s",
                source.correlation_id,
                repository,
                len(digest_tag_map) - len(report.sent) - len(report.failed),
                exc,
            )
            report.interrupted = exc
            break
        except NotificationError as exc:
            log.error(
                "Webhook notification failed: correlation_id=%s, repository=%s, "
                "digest=%s, tag=%s, error=%s",
                source.correlation_id,
                repository,
                digest,
                tag,
                exc,
            )
            report.failed[digest] = str(exc)
            continue
        log.info(f"Notified {payload.image} ({digest}) for correlation_id={source.correlation_id}")
        report.sent.append(payload)
        if not accepted:
            report.refused.append(payload)
    return report
