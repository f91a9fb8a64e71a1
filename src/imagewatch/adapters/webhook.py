"""Webhook notification sink for the downstream CI orchestrator."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING

import httpx

from imagewatch.adapters.http_resilience import ResilientClient, default_client_factory
from imagewatch.config.http_resilience import NO_RETRY, ResilienceConfig
from imagewatch.domain.errors import NotificationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from imagewatch.config.webhook import WebhookConfig
    from imagewatch.domain.model import NotificationPayload
    from imagewatch.domain.reconciliation.deadline import Deadline

log = getLogger(__name__)

API_TOKEN_HEADER = "api-token"


class WebhookNotifier:
    """POST one JSON payload per artifact; a single attempt per call."""

    def __init__(
        self,
        *,
        config: WebhookConfig,
        resilience: ResilienceConfig | None = None,
        client_factory: Callable[..., ResilientClient] | None = None,
    ) -> None:
        self._config = config
        base = resilience or ResilienceConfig(name="webhook", timeout_seconds=config.timeout_seconds)
        self._resilience = replace(base, retry=NO_RETRY)
        self._client_factory = client_factory or default_client_factory

    def url_for(self, correlation_id: int) -> str:
        return f"{self._config.base_url.rstrip('/')}/{self._config.path.strip('/')}/{correlation_id}"

    def notify(self, payload: NotificationPayload, *, deadline: Deadline) -> bool:
        return asyncio.run(self._notify_async(payload, deadline=deadline))

    async def _notify_async(self, payload: NotificationPayload, *, deadline: Deadline) -> bool:
        url = self.url_for(payload.correlation_id)
        headers = {
            API_TOKEN_HEADER: self._config.api_token,
            "Content-Type": "application/json",
        }
        log.debug(f"POST {url} image={payload.image} digest={payload.digest}")
        try:
            async with self._client_factory(self._resilience) as client:
                response = await client.post(
                    url,
                    json=payload.body(),
                    headers=headers,
                    timeout=deadline.clamp(self._resilience.timeout_seconds),
                )
        except httpx.HTTPError as exc:
            raise NotificationError(
                f"Webhook POST {url} failed: {exc}", digest=payload.digest, image=payload.image
            ) from exc

        if not response.is_success:
            # Delivered, but not accepted; only accepted payloads may be recorded.
            log.warning(
                f"Webhook POST {url} answered HTTP {response.status_code} for "
                f"image={payload.image} digest={payload.digest}"
            )
            return False
        return True


class LoggingNotifier:
    """Notification sink that only logs; used for dry runs."""

    def notify(self, payload: NotificationPayload, *, deadline: Deadline) -> bool:
        _ = deadline
        log.info(
            f"[dry-run] would notify correlation_id={payload.correlation_id}: "
            f"image={payload.image}, digest={payload.digest}"
        )
        return True


if TYPE_CHECKING:
    from imagewatch.domain.ports.notification import NotificationSink

    _sink_check: NotificationSink = LoggingNotifier()
