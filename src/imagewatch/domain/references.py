"""Parsing of configured registry/repository pairs into canonical references."""

from __future__ import annotations

import re
from dataclasses import dataclass
from logging import getLogger
from typing import Final

from .errors import ImageReferenceError

log = getLogger(__name__)

DOCKER_HUB_HOST: Final[str] = "docker.io"
DOCKER_HUB_API_HOST: Final[str] = "registry-1.docker.io"
_DOCKER_HUB_ALIASES: Final[frozenset[str]] = frozenset(
    {"docker.io", "index.docker.io", "registry-1.docker.io"}
)

_PATH_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_HOST = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9.-]*[a-zA-Z0-9])?(?::[0-9]+)?$")
_TAG = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_MAX_NAME_LENGTH: Final[int] = 255


@dataclass(frozen=True, slots=True)
class RepositoryReference:
    """A validated ``host/repository`` pair without tag or digest."""

    host: str
    repository: str
    scheme: str = "https"

    @property
    def api_host(self) -> str:
        return DOCKER_HUB_API_HOST if self.host == DOCKER_HUB_HOST else self.host

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.api_host}"

    @property
    def name(self) -> str:
        return f"{self.host}/{self.repository}"


def _looks_like_host(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def _split_scheme(registry_url: str) -> tuple[str | None, str]:
    for scheme in ("https", "http"):
        prefix = f"{scheme}://"
        if registry_url.lower().startswith(prefix):
            return scheme, registry_url[len(prefix) :]
    return None, registry_url


def parse_repository_reference(
    registry_url: str,
    repository: str,
) -> RepositoryReference:
    """Validate ``registry_url/repository`` and return its canonical form.

    The repository may not carry a tag or digest; those are discovered, never
    configured. HTTPS is used unless the registry URL names ``http://``
    explicitly.
    """

    explicit_scheme, remainder = _split_scheme(registry_url.strip())
    joined = "/".join(part.strip("/") for part in (remainder, repository.strip()) if part.strip("/"))
    if not joined:
        raise ImageReferenceError("Empty repository reference", reference=joined)

    components = joined.split("/")
    if len(components) > 1 and _looks_like_host(components[0]):
        host, path_components = components[0], components[1:]
    else:
        host, path_components = DOCKER_HUB_HOST, components

    if not _HOST.match(host):
        raise ImageReferenceError(f"Invalid registry host {host!r}", reference=joined)

    path = "/".join(path_components)
    if "@" in path:
        raise ImageReferenceError(
            f"Repository must not contain a digest; remove '@{path.split('@', 1)[1]}'",
            reference=joined,
        )
    if ":" in path:
        raise ImageReferenceError(
            f"URL must not contain a tag; remove ':{path.split(':', 1)[1]}'",
            reference=joined,
        )

    if host.lower() in _DOCKER_HUB_ALIASES:
        host = DOCKER_HUB_HOST
        if len(path_components) == 1:
            path_components = ["library", *path_components]

    for component in path_components:
        if not _PATH_COMPONENT.match(component):
            raise ImageReferenceError(
                f"Invalid repository path component {component!r}", reference=joined
            )

    reference = RepositoryReference(
        host=host,
        repository="/".join(path_components),
        scheme=explicit_scheme or "https",
    )
    if len(reference.name) > _MAX_NAME_LENGTH:
        raise ImageReferenceError(
            f"Repository name exceeds {_MAX_NAME_LENGTH} characters", reference=joined
        )
    log.debug(f"Parsed repository reference {reference.name} ({reference.base_url})")
    return reference


def validate_tag(tag: str) -> str:
    if not _TAG.match(tag):
        raise ImageReferenceError(f"Invalid tag {tag!r}", reference=tag)
    return tag


def image_reference(host: str, repository: str, tag: str) -> str:
    """Return the pullable ``host/repository:tag`` form used in notifications."""

    return f"{host}/{repository}:{tag}"
