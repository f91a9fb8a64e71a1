"""Configuration for the downstream webhook sink."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .env import env_int, env_optional_str, env_str, require_env_var

DEFAULT_SERVICE_NAME: Final[str] = "devtron-service"
DEFAULT_NAMESPACE: Final[str] = "devtroncd"
DEFAULT_PORT: Final[int] = 80
DEFAULT_PATH: Final[str] = "orchestrator/webhook/ext-ci"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 10.0


@dataclass(frozen=True, slots=True)
class WebhookConfig:
    api_token: str
    service_name: str = DEFAULT_SERVICE_NAME
    namespace: str = DEFAULT_NAMESPACE
    port: int = DEFAULT_PORT
    path: str = DEFAULT_PATH
    base_url_override: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def base_url(self) -> str:
        """In-cluster service address unless an explicit base URL is configured."""

        if self.base_url_override:
            return self.base_url_override
        return f"http://{self.service_name}.{self.namespace}:{self.port}"


def get_webhook_config() -> WebhookConfig:
    """Read the webhook settings; the shared-secret token is mandatory."""

    return WebhookConfig(
        api_token=require_env_var("API_TOKEN_EXTERNAL_CI"),
        service_name=env_str("WEBHOOK_SERVICE_NAME", DEFAULT_SERVICE_NAME),
        namespace=env_str("WEBHOOK_NAMESPACE", DEFAULT_NAMESPACE),
        port=env_int("WEBHOOK_PORT", DEFAULT_PORT),
        base_url_override=env_optional_str("WEBHOOK_BASE_URL"),
    )
