from __future__ import annotations

import json

import httpx
import pytest

from imagewatch.adapters.webhook import LoggingNotifier, WebhookNotifier
from imagewatch.config.http_resilience import NO_RETRY, ResilienceConfig
from imagewatch.config.webhook import WebhookConfig
from imagewatch.domain.errors import NotificationError
from imagewatch.domain.model import NotificationPayload
from imagewatch.domain.reconciliation import Deadline
from tests.helpers.http import make_client_factory

PAYLOAD = NotificationPayload(
    image="registry.example.com/team/web:v1",
    digest="sha256:" + "a" * 64,
    correlation_id=42,
)


def test_url_is_built_from_service_namespace_and_correlation_id() -> None:
    notifier = WebhookNotifier(config=WebhookConfig(api_token="t"))

    assert notifier.url_for(42) == (
        "http://devtron-service.devtroncd:80/orchestrator/webhook/ext-ci/42"
    )


def test_base_url_override() -> None:
    config = WebhookConfig(api_token="t", base_url_override="https://ci.example.com/")
    notifier = WebhookNotifier(config=config)

    assert notifier.url_for(7) == "https://ci.example.com/orchestrator/webhook/ext-ci/7"


def test_notify_posts_json_with_token_header() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"code": 200})

    notifier = WebhookNotifier(
        config=WebhookConfig(api_token="s3cret", service_name="orchestrator", namespace="ci"),
        client_factory=make_client_factory(handler),
    )

    assert notifier.notify(PAYLOAD, deadline=Deadline.none()) is True

    (request,) = requests
    assert request.method == "POST"
    assert request.url.host == "orchestrator.ci"
    assert request.url.path == "/orchestrator/webhook/ext-ci/42"
    assert request.headers["api-token"] == "s3cret"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {
        "image": "registry.example.com/team/web:v1",
        "digest": "sha256:" + "a" * 64,
    }


def test_transport_failure_raises_notification_error() -> None:
    attempts: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    notifier = WebhookNotifier(
        config=WebhookConfig(api_token="t"), client_factory=make_client_factory(handler)
    )

    with pytest.raises(NotificationError, match="connection refused") as exc:
        notifier.notify(PAYLOAD, deadline=Deadline.none())

    assert exc.value.digest == PAYLOAD.digest
    assert exc.value.image == PAYLOAD.image
    assert len(attempts) == 1


def test_error_status_is_logged_and_reported_as_refused(
    caplog: pytest.LogCaptureFixture,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(500, text="internal error")

    notifier = WebhookNotifier(
        config=WebhookConfig(api_token="t"), client_factory=make_client_factory(handler)
    )

    with caplog.at_level("WARNING"):
        accepted = notifier.notify(PAYLOAD, deadline=Deadline.none())

    assert accepted is False
    assert "HTTP 500" in caplog.text
    assert PAYLOAD.digest in caplog.text


def test_retries_are_always_disabled() -> None:
    seen: list[ResilienceConfig] = []

    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(202)

    notifier = WebhookNotifier(
        config=WebhookConfig(api_token="t"),
        resilience=ResilienceConfig(name="custom", timeout_seconds=3.0),
        client_factory=make_client_factory(handler, seen_configs=seen),
    )

    notifier.notify(PAYLOAD, deadline=Deadline.none())

    assert seen[0].retry == NO_RETRY
    assert seen[0].timeout_seconds == 3.0


def test_logging_notifier_only_logs(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("INFO"):
        assert LoggingNotifier().notify(PAYLOAD, deadline=Deadline.none()) is True

    assert "[dry-run]" in caplog.text
    assert PAYLOAD.image in caplog.text
