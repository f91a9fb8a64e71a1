"""Application orchestration entry points."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from imagewatch import __version__
from imagewatch.adapters.credentials import EnvCredentialProvider
from imagewatch.adapters.distribution import DistributionRegistryClient
from imagewatch.adapters.ecr import EcrRegistryClient
from imagewatch.adapters.sqlalchemy.session import artifact_ledger, is_started, startup
from imagewatch.adapters.webhook import LoggingNotifier, WebhookNotifier
from imagewatch.config.http_resilience import ResilienceConfig
from imagewatch.config.reconciler import get_reconciler_config
from imagewatch.config.webhook import get_webhook_config
from imagewatch.domain.model import RegistryKind
from imagewatch.domain.reconciliation import ReconciliationLoop, SourceReconciler

if TYPE_CHECKING:
    from collections.abc import Mapping

    from imagewatch.config.reconciler import ReconcilerConfig
    from imagewatch.config.webhook import WebhookConfig
    from imagewatch.domain.model import PassReport
    from imagewatch.domain.ports.credentials import CredentialProvider
    from imagewatch.domain.ports.ledger import ArtifactLedger
    from imagewatch.domain.ports.notification import NotificationSink
    from imagewatch.domain.ports.registry import RegistryClient

log = getLogger(__name__)


def build_registry_clients(
    config: ReconcilerConfig,
    *,
    credentials: CredentialProvider | None = None,
) -> dict[RegistryKind, RegistryClient]:
    """Return one client per registry flavour, sharing timeouts and credentials."""

    provider = credentials or EnvCredentialProvider()
    resilience = ResilienceConfig(
        name="registry",
        timeout_seconds=config.registry_timeout_seconds,
        user_agent=f"imagewatch/{__version__}",
        ratelimit=config.registry_rate_limit,
    )
    return {
        RegistryKind.DISTRIBUTION: DistributionRegistryClient(
            resilience=resilience, credentials=provider
        ),
        RegistryKind.ECR: EcrRegistryClient(
            credentials=provider, timeout_seconds=config.registry_timeout_seconds
        ),
    }


def build_notification_sink(
    webhook: WebhookConfig | None = None, *, dry_run: bool = False
) -> NotificationSink:
    """Return the webhook sink, or a logging-only sink for dry runs.

    The webhook configuration (and its required token) is only read when the
    webhook is actually used.
    """

    if dry_run:
        return LoggingNotifier()
    return WebhookNotifier(config=webhook or get_webhook_config())


def reconcile_registries(
    *,
    config: ReconcilerConfig | None = None,
    webhook: WebhookConfig | None = None,
    ledger: ArtifactLedger | None = None,
    sink: NotificationSink | None = None,
    clients: Mapping[RegistryKind, RegistryClient] | None = None,
    dry_run: bool = False,
) -> PassReport:
    """Run one reconciliation pass over every configured source."""

    effective_config = config or get_reconciler_config()
    effective_sink = sink or build_notification_sink(webhook, dry_run=dry_run)
    if ledger is None:
        if not is_started():
            startup()
        ledger = artifact_ledger()
    effective_clients = clients or build_registry_clients(effective_config)

    log.info(
        "Starting reconciliation: sources=%s, max_tags=%s, dry_run=%s, record_notified=%s",
        len(effective_config.sources),
        effective_config.max_tags,
        dry_run,
        effective_config.record_notified,
    )

    reconciler = SourceReconciler(
        clients=effective_clients,
        ledger=ledger,
        sink=effective_sink,
        max_tags=effective_config.max_tags,
        digest_workers=effective_config.digest_workers,
        record_notified=effective_config.record_notified and not dry_run,
    )
    loop = ReconciliationLoop(
        reconciler=reconciler,
        sources=effective_config.sources,
        pass_timeout_seconds=effective_config.pass_timeout_seconds,
        max_workers=effective_config.source_workers,
    )
    return loop.run_pass()
