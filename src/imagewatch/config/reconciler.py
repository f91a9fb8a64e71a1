"""Reconciliation settings and the watched-source list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

import yaml

from imagewatch.domain.model import RegistryKind, RegistrySource
from imagewatch.domain.reconciliation.window import DEFAULT_TAG_WINDOW

from .env import env_bool, env_int, env_optional_float, env_optional_str, parse_bool
from .errors import ConfigurationError
from .http_resilience import RateLimit

DEFAULT_REGISTRY_TIMEOUT_SECONDS: Final[float] = 30.0
SOURCES_ENV_VAR: Final[str] = "DEPLOY_CONFIG_EXTERNAL_CI"

_CORRELATION_ID_KEY: Final[str] = "EXTERNAL_CI_ID"
_REPOSITORY_KEY: Final[str] = "REPO_NAME_EXTERNAL_CI"
_REGISTRY_URL_KEY: Final[str] = "REGISTRY_URL_EXTERNAL_CI"
_REGISTRY_TYPE_KEY: Final[str] = "REGISTRY_TYPE"
_CREDENTIALS_REF_KEY: Final[str] = "CREDENTIALS_REF"
_REGION_KEY: Final[str] = "AWS_REGION"
_INSECURE_KEY: Final[str] = "INSECURE"


@dataclass(frozen=True, slots=True)
class ReconcilerConfig:
    sources: tuple[RegistrySource, ...] = ()
    max_tags: int = DEFAULT_TAG_WINDOW
    pass_timeout_seconds: float | None = None
    registry_timeout_seconds: float = DEFAULT_REGISTRY_TIMEOUT_SECONDS
    digest_workers: int = 1
    source_workers: int = 1
    record_notified: bool = False
    registry_rate_limit: RateLimit | None = None

    def __post_init__(self) -> None:
        if self.max_tags <= 0:
            raise ConfigurationError(f"Tag window must be positive, got {self.max_tags}")
        if self.pass_timeout_seconds is not None and self.pass_timeout_seconds <= 0:
            raise ConfigurationError(
                f"Pass timeout must be positive, got {self.pass_timeout_seconds}"
            )
        if self.registry_timeout_seconds <= 0:
            raise ConfigurationError(
                f"Registry timeout must be positive, got {self.registry_timeout_seconds}"
            )
        if self.digest_workers < 1 or self.source_workers < 1:
            raise ConfigurationError("Worker counts must be at least 1")
        if self.registry_rate_limit is not None and (
            self.registry_rate_limit.max_calls < 1 or self.registry_rate_limit.per_seconds <= 0
        ):
            raise ConfigurationError(f"Invalid registry rate limit: {self.registry_rate_limit}")


def parse_sources(text: str | None, *, default_insecure: bool = True) -> tuple[RegistrySource, ...]:
    """Parse the YAML list of watched repositories.

    Each entry needs ``EXTERNAL_CI_ID``, ``REPO_NAME_EXTERNAL_CI`` and
    ``REGISTRY_URL_EXTERNAL_CI``; ``REGISTRY_TYPE``, ``CREDENTIALS_REF``,
    ``AWS_REGION`` and ``INSECURE`` are optional. Blank input yields no sources.
    """

    if text is None or not text.strip():
        return ()
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{SOURCES_ENV_VAR} is not valid YAML: {exc}") from exc
    if loaded is None:
        return ()
    if not isinstance(loaded, list):
        raise ConfigurationError(f"{SOURCES_ENV_VAR} must be a YAML list of sources")
    return tuple(_parse_entry(index, entry, default_insecure) for index, entry in enumerate(loaded))


def _parse_entry(index: int, entry: Any, default_insecure: bool) -> RegistrySource:  # noqa: ANN401, FBT001
    if not isinstance(entry, dict):
        raise ConfigurationError(f"{SOURCES_ENV_VAR}[{index}] must be a mapping")

    missing = [
        key
        for key in (_CORRELATION_ID_KEY, _REPOSITORY_KEY, _REGISTRY_URL_KEY)
        if entry.get(key) in (None, "")
    ]
    if missing:
        raise ConfigurationError(
            f"{SOURCES_ENV_VAR}[{index}] is missing: {', '.join(missing)}"
        )

    raw_id = entry[_CORRELATION_ID_KEY]
    if isinstance(raw_id, bool):
        raise ConfigurationError(
            f"{SOURCES_ENV_VAR}[{index}].{_CORRELATION_ID_KEY} must be an integer"
        )
    try:
        correlation_id = int(raw_id)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"{SOURCES_ENV_VAR}[{index}].{_CORRELATION_ID_KEY} must be an integer, got {raw_id!r}"
        ) from exc

    try:
        kind = RegistryKind.parse(_optional(entry, _REGISTRY_TYPE_KEY))
    except ValueError as exc:
        raise ConfigurationError(f"{SOURCES_ENV_VAR}[{index}]: {exc}") from exc

    insecure = default_insecure
    if entry.get(_INSECURE_KEY) is not None:
        raw_insecure = entry[_INSECURE_KEY]
        insecure = parse_bool(
            raw_insecure if isinstance(raw_insecure, bool) else str(raw_insecure),
            name=f"{SOURCES_ENV_VAR}[{index}].{_INSECURE_KEY}",
        )

    return RegistrySource(
        correlation_id=correlation_id,
        registry_url=str(entry[_REGISTRY_URL_KEY]).strip(),
        repository=str(entry[_REPOSITORY_KEY]).strip(),
        kind=kind,
        credentials_ref=_optional(entry, _CREDENTIALS_REF_KEY),
        insecure=insecure,
        region=_optional(entry, _REGION_KEY),
    )


def _optional(entry: dict[str, Any], key: str) -> str | None:
    value = entry.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def get_reconciler_config() -> ReconcilerConfig:
    insecure = env_bool("INSECURE_EXTERNAL_CI", True)  # noqa: FBT003
    registry_timeout = env_optional_float("REGISTRY_TIMEOUT_SECONDS")
    max_calls_per_second = env_int("REGISTRY_MAX_CALLS_PER_SECOND", 0)
    return ReconcilerConfig(
        sources=parse_sources(env_optional_str(SOURCES_ENV_VAR), default_insecure=insecure),
        max_tags=env_int("IMAGE_COUNT_FROM_REPO", DEFAULT_TAG_WINDOW),
        pass_timeout_seconds=env_optional_float("PASS_TIMEOUT_SECONDS"),
        registry_timeout_seconds=(
            registry_timeout if registry_timeout is not None else DEFAULT_REGISTRY_TIMEOUT_SECONDS
        ),
        digest_workers=env_int("DIGEST_WORKERS", 1),
        source_workers=env_int("SOURCE_WORKERS", 1),
        record_notified=env_bool("RECORD_NOTIFIED_ARTIFACTS", False),  # noqa: FBT003
        registry_rate_limit=(
            RateLimit(max_calls=max_calls_per_second, per_seconds=1.0)
            if max_calls_per_second
            else None
        ),
    )
