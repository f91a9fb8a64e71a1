"""HTTP client for distribution-spec (OCI / Docker Registry v2) registries."""

from __future__ import annotations

import asyncio
import hashlib
import re
import threading
from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from pydantic import ValidationError

from imagewatch.adapters.http_resilience import ResilientClient, default_client_factory
from imagewatch.config.http_resilience import ResilienceConfig
from imagewatch.domain.errors import ImageReferenceError, RegistryAuthError, RegistryCallError
from imagewatch.domain.model import TaggedImage
from imagewatch.domain.references import parse_repository_reference, validate_tag

from .auth import RegistryAuth, TokenRequestError
from .schema import RegistryErrorResponse, TagList

if TYPE_CHECKING:
    from collections.abc import Callable

    from imagewatch.domain.model import RegistryCredentials, RegistrySource
    from imagewatch.domain.ports.credentials import CredentialProvider
    from imagewatch.domain.reconciliation.deadline import Deadline
    from imagewatch.domain.references import RepositoryReference

log = getLogger(__name__)

DEFAULT_PAGE_SIZE: Final[int] = 100
MANIFEST_MEDIA_TYPES: Final[tuple[str, ...]] = (
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.v1+prettyjws",
)
_DIGEST = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")

type ClientFactory = Callable[..., ResilientClient]
type _AuthKey = tuple[str, str, RegistryCredentials | None]


def _anonymous(_reference: str | None) -> None:
    return None


class DistributionRegistryClient:
    """Lists tags and resolves manifest digests over the ``/v2/`` API.

    Tags come back without digests; each digest costs one extra round trip.
    Authorization obtained for a repository is reused by later calls for the
    same repository and credentials, so a bearer token is fetched once rather
    than once per tag.

    ``RegistrySource.insecure`` disables TLS verification and, when the HTTPS
    connection itself fails, retries over plain HTTP. A host that only answered
    over HTTP is contacted over HTTP from then on.
    """

    def __init__(
        self,
        *,
        resilience: ResilienceConfig | None = None,
        credentials: CredentialProvider | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._resilience = resilience or ResilienceConfig(name="registry")
        self._credentials: CredentialProvider = credentials or _anonymous
        self._page_size = page_size
        self._client_factory: ClientFactory = client_factory or default_client_factory
        self._auth: dict[_AuthKey, RegistryAuth] = {}
        self._plain_http_hosts: set[str] = set()
        self._lock = threading.Lock()

    def reference(self, source: RegistrySource) -> RepositoryReference:
        return parse_repository_reference(source.registry_url, source.repository)

    def list_tags(self, source: RegistrySource, *, deadline: Deadline) -> list[TaggedImage]:
        reference = self.reference(source)
        tags = asyncio.run(self._list_tags_async(source, reference, deadline=deadline))
        return [TaggedImage(tag=tag) for tag in tags]

    def resolve_digest(self, source: RegistrySource, tag: str, *, deadline: Deadline) -> str:
        reference = self.reference(source)
        try:
            validate_tag(tag)
        except ImageReferenceError as exc:
            raise RegistryCallError(
                f"Registry listed an invalid tag {tag!r}", repository=reference.name, tag=tag
            ) from exc
        return asyncio.run(self._resolve_digest_async(source, reference, tag, deadline=deadline))

    def _open(self, source: RegistrySource, reference: RepositoryReference) -> ResilientClient:
        resilience = replace(
            self._resilience, verify_tls=self._resilience.verify_tls and not source.insecure
        )
        return self._client_factory(resilience, auth=self._auth_for(source, reference))

    def _auth_for(self, source: RegistrySource, reference: RepositoryReference) -> RegistryAuth:
        # Credentials are part of the key so rotated secrets start a fresh session.
        credentials = self._credentials(source.credentials_ref)
        key: _AuthKey = (reference.api_host, reference.repository, credentials)
        with self._lock:
            auth = self._auth.get(key)
            if auth is None:
                auth = RegistryAuth(credentials, scope=f"repository:{reference.repository}:pull")
                self._auth[key] = auth
            return auth

    def _url(self, reference: RepositoryReference, path: str) -> httpx.URL:
        url = httpx.URL(f"{reference.base_url}{path}")
        with self._lock:
            plain_http = reference.api_host in self._plain_http_hosts
        return url.copy_with(scheme="http") if plain_http and url.scheme == "https" else url

    async def _list_tags_async(
        self,
        source: RegistrySource,
        reference: RepositoryReference,
        *,
        deadline: Deadline,
    ) -> list[str]:
        tags: list[str] = []
        url: httpx.URL | None = self._url(reference, f"/v2/{reference.repository}/tags/list")
        params: dict[str, int] | None = {"n": self._page_size}
        pages = 0

        async with self._open(source, reference) as client:
            while url is not None:
                deadline.check(f"listing tags of {reference.name}")
                response = await self._call(
                    client,
                    "GET",
                    url,
                    source=source,
                    reference=reference,
                    deadline=deadline,
                    params=params,
                )
                try:
                    page = TagList.model_validate(response.json())
                except (ValueError, ValidationError) as exc:
                    raise RegistryCallError(
                        f"Malformed tag list from {reference.name}: {exc}",
                        repository=reference.name,
                    ) from exc
                tags.extend(page.tags)
                pages += 1

                next_link = response.links.get("next", {}).get("url")
                # Continuation links carry their own ``n``/``last`` query.
                url = response.url.join(next_link) if next_link else None
                params = None

        log.debug(f"Listed {len(tags)} tags of {reference.name} in {pages} page(s)")
        return tags

    async def _resolve_digest_async(
        self,
        source: RegistrySource,
        reference: RepositoryReference,
        tag: str,
        *,
        deadline: Deadline,
    ) -> str:
        url = self._url(reference, f"/v2/{reference.repository}/manifests/{tag}")
        headers = {"Accept": ", ".join(MANIFEST_MEDIA_TYPES)}

        async with self._open(source, reference) as client:
            deadline.check(f"resolving digest of {reference.name}:{tag}")
            response = await self._call(
                client,
                "HEAD",
                url,
                source=source,
                reference=reference,
                deadline=deadline,
                tag=tag,
                headers=headers,
                allow_status=frozenset({httpx.codes.METHOD_NOT_ALLOWED}),
            )
            digest = response.headers.get("Docker-Content-Digest")
            if response.is_success and digest:
                return self._validated(digest, reference=reference, tag=tag)

            deadline.check(f"fetching manifest of {reference.name}:{tag}")
            response = await self._call(
                client,
                "GET",
                response.url,
                source=source,
                reference=reference,
                deadline=deadline,
                tag=tag,
                headers=headers,
            )
            digest = response.headers.get("Docker-Content-Digest")
            if digest:
                return self._validated(digest, reference=reference, tag=tag)
            return f"sha256:{hashlib.sha256(response.content).hexdigest()}"

    async def _call(  # noqa: PLR0913
        self,
        client: ResilientClient,
        method: str,
        url: httpx.URL,
        *,
        source: RegistrySource,
        reference: RepositoryReference,
        deadline: Deadline,
        tag: str | None = None,
        params: dict[str, int] | None = None,
        headers: dict[str, str] | None = None,
        allow_status: frozenset[int] = frozenset(),
    ) -> httpx.Response:
        try:
            response = await self._send(
                client,
                method,
                url,
                source=source,
                reference=reference,
                deadline=deadline,
                params=params,
                headers=headers,
            )
        except TokenRequestError as exc:
            raise RegistryAuthError(
                f"Registry token request for {reference.name} failed: {exc}",
                repository=reference.name,
                tag=tag,
            ) from exc
        except httpx.HTTPError as exc:
            raise RegistryCallError(
                f"{method} {url} failed: {exc}", repository=reference.name, tag=tag
            ) from exc

        if response.is_success or response.status_code in allow_status:
            return response
        detail = _error_detail(response)
        if response.status_code in {httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN}:
            raise RegistryAuthError(
                f"Registry denied access to {reference.name} (HTTP {response.status_code}){detail}",
                repository=reference.name,
                tag=tag,
            )
        raise RegistryCallError(
            f"{method} {url} returned HTTP {response.status_code}{detail}",
            repository=reference.name,
            tag=tag,
        )

    async def _send(  # noqa: PLR0913
        self,
        client: ResilientClient,
        method: str,
        url: httpx.URL,
        *,
        source: RegistrySource,
        reference: RepositoryReference,
        deadline: Deadline,
        params: dict[str, int] | None,
        headers: dict[str, str] | None,
    ) -> httpx.Response:
        try:
            return await client.request(
                method,
                url,
                params=params,
                headers=headers,
                timeout=deadline.clamp(self._resilience.timeout_seconds),
            )
        except httpx.ConnectError:
            if not source.insecure or url.scheme != "https":
                raise

        plain_url = url.copy_with(scheme="http")
        log.info(f"HTTPS connection to {url.host} failed; retrying insecure source over HTTP")
        deadline.check(f"retrying {method} {plain_url}")
        response = await client.request(
            method,
            plain_url,
            params=params,
            headers=headers,
            timeout=deadline.clamp(self._resilience.timeout_seconds),
        )
        with self._lock:
            self._plain_http_hosts.add(reference.api_host)
        return response

    @staticmethod
    def _validated(digest: str, *, reference: RepositoryReference, tag: str) -> str:
        digest = digest.strip()
        if not _DIGEST.match(digest):
            raise RegistryCallError(
                f"Registry returned malformed digest {digest!r}", repository=reference.name, tag=tag
            )
        return digest


def _error_detail(response: httpx.Response) -> str:
    if not response.content:
        return ""
    try:
        summary = RegistryErrorResponse.model_validate(response.json()).summary()
    except (ValueError, ValidationError):
        return ""
    return f": {summary}" if summary else ""
