"""Amazon ECR registry client built on boto3's native image listing."""

from __future__ import annotations

import re
from contextlib import contextmanager
from logging import getLogger
from typing import TYPE_CHECKING, Any, Final, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from pydantic import ValidationError

from imagewatch.domain.errors import ImageReferenceError, RegistryAuthError, RegistryCallError
from imagewatch.domain.model import TaggedImage
from imagewatch.domain.references import RepositoryReference, parse_repository_reference

from .schema import DescribeImagesResponse, ListImagesPage

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from imagewatch.domain.model import RegistryCredentials, RegistrySource
    from imagewatch.domain.ports.credentials import CredentialProvider
    from imagewatch.domain.reconciliation.deadline import Deadline

    from .schema import ImageIdentifier

log = getLogger(__name__)

ECR_DOMAIN: Final[str] = "amazonaws.com"
DEFAULT_PAGE_SIZE: Final[int] = 1000
_REGISTRY_ID = re.compile(r"^[0-9]{12}$")
_ECR_HOST = re.compile(
    r"^(?P<registry_id>[0-9]{12})\.dkr\.ecr(?:-fips)?\.(?P<region>[a-z0-9-]+)\.amazonaws\.com(?:\.cn)?$"
)
_AUTH_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {
        "AccessDeniedException",
        "ExpiredTokenException",
        "InvalidSignatureException",
        "UnrecognizedClientException",
    }
)


class EcrApi(Protocol):
    """The slice of the boto3 ECR client used here."""

    def get_paginator(self, operation_name: str) -> Any: ...  # noqa: ANN401

    def describe_images(self, **kwargs: Any) -> dict[str, Any]: ...  # noqa: ANN401


type EcrClientFactory = Callable[[str | None, RegistryCredentials | None, float], EcrApi]


def ecr_host(registry_id: str, region: str) -> str:
    """Return the registry host used in pullable image references."""

    return f"{registry_id}.dkr.ecr.{region}.{ECR_DOMAIN}"


def parse_ecr_registry(registry_url: str, region: str | None) -> tuple[str, str]:
    """Return ``(registry_id, region)`` from a bare registry id or a full ECR host."""

    candidate = registry_url.strip().removeprefix("https://").removeprefix("http://").strip("/")
    match = _ECR_HOST.match(candidate)
    if match is not None:
        return match["registry_id"], region or match["region"]
    if _REGISTRY_ID.match(candidate):
        if not region:
            raise ImageReferenceError(
                f"ECR registry {candidate} needs a region to build image references",
                reference=candidate,
            )
        return candidate, region
    raise ImageReferenceError(
        f"Not an ECR registry id or host: {registry_url!r}", reference=registry_url
    )


def _default_ecr_client(
    region: str | None,
    credentials: RegistryCredentials | None,
    timeout_seconds: float,
) -> EcrApi:
    config = BotoConfig(
        connect_timeout=timeout_seconds,
        read_timeout=timeout_seconds,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    # One session per client; the module-level default session is not thread-safe.
    if credentials is None:
        session = boto3.session.Session(region_name=region)
    else:
        session = boto3.session.Session(
            aws_access_key_id=credentials.username,
            aws_secret_access_key=credentials.password,
            region_name=region,
        )
    return session.client("ecr", config=config)


def _anonymous(_reference: str | None) -> None:
    return None


class EcrRegistryClient:
    """Lists (tag, digest) pairs of an ECR repository with ``ListImages``.

    Every page is followed; untagged images are filtered out server-side.
    ``ListImages`` does not promise recency order, so the tag window over an
    ECR repository is an arbitrary slice of its tags.
    """

    def __init__(
        self,
        *,
        credentials: CredentialProvider | None = None,
        timeout_seconds: float = 30.0,
        page_size: int = DEFAULT_PAGE_SIZE,
        client_factory: EcrClientFactory | None = None,
    ) -> None:
        self._credentials: CredentialProvider = credentials or _anonymous
        self._timeout_seconds = timeout_seconds
        self._page_size = page_size
        self._client_factory: EcrClientFactory = client_factory or _default_ecr_client

    def reference(self, source: RegistrySource) -> RepositoryReference:
        registry_id, region = parse_ecr_registry(source.registry_url, source.region)
        return parse_repository_reference(ecr_host(registry_id, region), source.repository)

    def list_tags(self, source: RegistrySource, *, deadline: Deadline) -> list[TaggedImage]:
        registry_id, region = parse_ecr_registry(source.registry_url, source.region)
        reference = self.reference(source)
        client = self._client(source, region, deadline=deadline)

        images: list[TaggedImage] = []
        pages = 0
        with _translated_errors(reference):
            paginator = client.get_paginator("list_images")
            for raw_page in paginator.paginate(
                registryId=registry_id,
                repositoryName=reference.repository,
                filter={"tagStatus": "TAGGED"},
                PaginationConfig={"PageSize": self._page_size},
            ):
                page = ListImagesPage.model_validate(raw_page)
                images.extend(_tagged(page.image_ids))
                pages += 1
                if page.next_token:
                    deadline.check(f"listing the next page of {reference.name}")

        log.debug(f"Listed {len(images)} tagged images of {reference.name} in {pages} page(s)")
        return images

    def resolve_digest(self, source: RegistrySource, tag: str, *, deadline: Deadline) -> str:
        registry_id, region = parse_ecr_registry(source.registry_url, source.region)
        reference = self.reference(source)
        client = self._client(source, region, deadline=deadline)

        with _translated_errors(reference, tag=tag):
            raw = client.describe_images(
                registryId=registry_id,
                repositoryName=reference.repository,
                imageIds=[{"imageTag": tag}],
            )
            response = DescribeImagesResponse.model_validate(raw)
        for detail in response.image_details:
            if detail.image_digest:
                return detail.image_digest
        raise RegistryCallError(
            f"ECR has no digest for {reference.name}:{tag}", repository=reference.name, tag=tag
        )

    def _client(self, source: RegistrySource, region: str, *, deadline: Deadline) -> EcrApi:
        deadline.check(f"contacting ECR for {source.describe()}")
        credentials = self._credentials(source.credentials_ref)
        return self._client_factory(region, credentials, deadline.clamp(self._timeout_seconds))


@contextmanager
def _translated_errors(reference: RepositoryReference, *, tag: str | None = None) -> Iterator[None]:
    name = reference.name
    try:
        yield
    except NoCredentialsError as exc:
        raise RegistryAuthError(
            f"No AWS credentials available for {name}", repository=name, tag=tag
        ) from exc
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code", "")
        error_cls = RegistryAuthError if code in _AUTH_ERROR_CODES else RegistryCallError
        raise error_cls(
            f"ECR call for {name} failed ({code}): {exc}", repository=name, tag=tag
        ) from exc
    except BotoCoreError as exc:
        raise RegistryCallError(f"ECR call for {name} failed: {exc}", repository=name, tag=tag) from exc
    except ValidationError as exc:
        raise RegistryCallError(
            f"Malformed ECR response for {name}: {exc}", repository=name, tag=tag
        ) from exc


def _tagged(identifiers: Iterable[ImageIdentifier]) -> Iterator[TaggedImage]:
    for identifier in identifiers:
        if identifier.image_tag and identifier.image_digest:
            yield TaggedImage(tag=identifier.image_tag, digest=identifier.image_digest)
