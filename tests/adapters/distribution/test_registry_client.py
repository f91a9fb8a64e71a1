from __future__ import annotations

import base64
import hashlib
from typing import TYPE_CHECKING

import httpx
import pytest

from imagewatch.adapters.distribution import MANIFEST_MEDIA_TYPES, DistributionRegistryClient
from imagewatch.config.http_resilience import ResilienceConfig
from imagewatch.domain.errors import DeadlineExceededError, RegistryAuthError, RegistryCallError
from imagewatch.domain.model import RegistryCredentials, RegistrySource, TaggedImage
from imagewatch.domain.reconciliation import Deadline
from tests.helpers.fakes import digest_of
from tests.helpers.http import make_client_factory

if TYPE_CHECKING:
    from collections.abc import Callable

TOKEN_CHALLENGE = (
    'Bearer realm="https://auth.example.com/token",service="registry.example.com",'
    'scope="repository:team/web:pull"'
)


@pytest.fixture
def source() -> RegistrySource:
    return RegistrySource(
        correlation_id=3,
        registry_url="registry.example.com",
        repository="team/web",
        credentials_ref="ci",
    )


def _credentials(reference: str | None) -> RegistryCredentials | None:
    if reference == "ci":
        return RegistryCredentials(username="robot", password="hunter2")
    return None


def test_list_tags_follows_link_pagination(source: RegistrySource) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "last" not in request.url.params:
            return httpx.Response(
                200,
                json={"name": "team/web", "tags": ["v1", "v2"]},
                headers={"Link": '</v2/team/web/tags/list?n=2&last=v2>; rel="next"'},
            )
        return httpx.Response(200, json={"name": "team/web", "tags": ["v3"]})

    client = DistributionRegistryClient(page_size=2, client_factory=make_client_factory(handler))

    images = client.list_tags(source, deadline=Deadline.none())

    assert images == [TaggedImage(tag="v1"), TaggedImage(tag="v2"), TaggedImage(tag="v3")]
    assert [str(request.url) for request in requests] == [
        "https://registry.example.com/v2/team/web/tags/list?n=2",
        "https://registry.example.com/v2/team/web/tags/list?n=2&last=v2",
    ]


def test_null_tag_list_is_empty(source: RegistrySource) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(200, json={"name": "team/web", "tags": None})

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    assert client.list_tags(source, deadline=Deadline.none()) == []


def test_resolve_digest_reads_head_header(source: RegistrySource) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, headers={"Docker-Content-Digest": digest_of("v1")})

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    digest = client.resolve_digest(source, "v1", deadline=Deadline.none())

    assert digest == digest_of("v1")
    assert [request.method for request in requests] == ["HEAD"]
    assert requests[0].url.path == "/v2/team/web/manifests/v1"
    accept = requests[0].headers["Accept"]
    assert all(media_type in accept for media_type in MANIFEST_MEDIA_TYPES)


def test_resolve_digest_falls_back_to_manifest_body(source: RegistrySource) -> None:
    manifest = b'{"schemaVersion": 2}'

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "HEAD":
            return httpx.Response(405)
        return httpx.Response(200, content=manifest)

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    digest = client.resolve_digest(source, "v1", deadline=Deadline.none())

    assert digest == f"sha256:{hashlib.sha256(manifest).hexdigest()}"


def test_resolve_digest_rejects_malformed_digest(source: RegistrySource) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(200, headers={"Docker-Content-Digest": "not a digest"})

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    with pytest.raises(RegistryCallError, match="malformed digest") as exc:
        client.resolve_digest(source, "v1", deadline=Deadline.none())
    assert exc.value.tag == "v1"


def test_bearer_challenge_is_answered_once_per_client_session(source: RegistrySource) -> None:
    token_requests: list[httpx.Request] = []
    registry_auth_headers: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "auth.example.com":
            token_requests.append(request)
            return httpx.Response(200, json={"token": "t0k3n"})
        registry_auth_headers.append(request.headers.get("Authorization"))
        if request.headers.get("Authorization") != "Bearer t0k3n":
            return httpx.Response(401, headers={"WWW-Authenticate": TOKEN_CHALLENGE})
        if "last" not in request.url.params:
            return httpx.Response(
                200,
                json={"name": "team/web", "tags": ["v1"]},
                headers={"Link": '</v2/team/web/tags/list?n=1&last=v1>; rel="next"'},
            )
        return httpx.Response(200, json={"name": "team/web", "tags": ["v2"]})

    client = DistributionRegistryClient(
        credentials=_credentials, page_size=1, client_factory=make_client_factory(handler)
    )

    images = client.list_tags(source, deadline=Deadline.none())

    assert [image.tag for image in images] == ["v1", "v2"]
    assert len(token_requests) == 1
    token_request = token_requests[0]
    assert token_request.url.params["scope"] == "repository:team/web:pull"
    assert token_request.url.params["service"] == "registry.example.com"
    expected_basic = base64.b64encode(b"robot:hunter2").decode()
    assert token_request.headers["Authorization"] == f"Basic {expected_basic}"
    assert registry_auth_headers == [None, "Bearer t0k3n", "Bearer t0k3n"]


def test_basic_challenge_uses_configured_credentials(source: RegistrySource) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "Authorization" not in request.headers:
            return httpx.Response(401, headers={"WWW-Authenticate": 'Basic realm="registry"'})
        return httpx.Response(200, json={"name": "team/web", "tags": ["v1"]})

    client = DistributionRegistryClient(
        credentials=_credentials, client_factory=make_client_factory(handler)
    )

    assert client.list_tags(source, deadline=Deadline.none()) == [TaggedImage(tag="v1")]


def test_rejected_token_request_is_an_auth_error(source: RegistrySource) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "auth.example.com":
            return httpx.Response(401, json={"details": "incorrect username or password"})
        return httpx.Response(401, headers={"WWW-Authenticate": TOKEN_CHALLENGE})

    client = DistributionRegistryClient(
        credentials=_credentials, client_factory=make_client_factory(handler)
    )

    with pytest.raises(RegistryAuthError, match="token request"):
        client.list_tags(source, deadline=Deadline.none())


def test_denied_access_is_an_auth_error(source: RegistrySource) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(
            403, json={"errors": [{"code": "DENIED", "message": "requested access is denied"}]}
        )

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    with pytest.raises(RegistryAuthError, match="DENIED") as exc:
        client.list_tags(source, deadline=Deadline.none())
    assert exc.value.repository == "registry.example.com/team/web"


def test_server_errors_are_registry_call_errors(source: RegistrySource) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(503, text="unavailable")

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    with pytest.raises(RegistryCallError, match="HTTP 503") as exc:
        client.list_tags(source, deadline=Deadline.none())
    assert not isinstance(exc.value, RegistryAuthError)


def test_transport_errors_are_registry_call_errors(source: RegistrySource) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    with pytest.raises(RegistryCallError, match="connection refused"):
        client.resolve_digest(source, "v1", deadline=Deadline.none())


def test_malformed_tag_list_is_a_registry_call_error(source: RegistrySource) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(200, content=b"<html>login</html>")

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    with pytest.raises(RegistryCallError, match="Malformed tag list"):
        client.list_tags(source, deadline=Deadline.none())


INSECURE_SOURCE = RegistrySource(
    correlation_id=1, registry_url="registry.internal:5000", repository="app", insecure=True
)


def _plain_http_registry(urls: list[httpx.URL]) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        urls.append(request.url)
        if request.url.scheme == "https":
            raise httpx.ConnectError("wrong version number", request=request)
        if request.url.path.endswith("/tags/list"):
            return httpx.Response(200, json={"name": "app", "tags": ["v1"]})
        return httpx.Response(200, headers={"Docker-Content-Digest": digest_of("v1")})

    return handler


def test_sources_are_contacted_over_https_by_default(source: RegistrySource) -> None:
    seen_configs: list[ResilienceConfig] = []
    urls: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        urls.append(request.url)
        return httpx.Response(200, json={"name": "team/web", "tags": []})

    client = DistributionRegistryClient(
        client_factory=make_client_factory(handler, seen_configs=seen_configs)
    )

    client.list_tags(source, deadline=Deadline.none())

    assert [url.scheme for url in urls] == ["https"]
    assert seen_configs[0].verify_tls is True


def test_insecure_sources_try_https_without_verification_first() -> None:
    seen_configs: list[ResilienceConfig] = []
    urls: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        urls.append(request.url)
        return httpx.Response(200, json={"name": "app", "tags": ["v1"]})

    client = DistributionRegistryClient(
        client_factory=make_client_factory(handler, seen_configs=seen_configs)
    )

    assert client.list_tags(INSECURE_SOURCE, deadline=Deadline.none()) == [TaggedImage(tag="v1")]
    assert [str(url) for url in urls] == ["https://registry.internal:5000/v2/app/tags/list?n=100"]
    assert seen_configs[0].verify_tls is False


def test_insecure_sources_fall_back_to_plain_http_and_remember_it() -> None:
    urls: list[httpx.URL] = []
    client = DistributionRegistryClient(
        client_factory=make_client_factory(_plain_http_registry(urls))
    )

    images = client.list_tags(INSECURE_SOURCE, deadline=Deadline.none())
    digest = client.resolve_digest(INSECURE_SOURCE, "v1", deadline=Deadline.none())

    assert images == [TaggedImage(tag="v1")]
    assert digest == digest_of("v1")
    assert [(url.scheme, url.port, url.path) for url in urls] == [
        ("https", 5000, "/v2/app/tags/list"),
        ("http", 5000, "/v2/app/tags/list"),
        ("http", 5000, "/v2/app/manifests/v1"),
    ]


def test_secure_sources_never_fall_back_to_plain_http() -> None:
    urls: list[httpx.URL] = []
    client = DistributionRegistryClient(
        client_factory=make_client_factory(_plain_http_registry(urls))
    )
    source = RegistrySource(
        correlation_id=1, registry_url="registry.internal:5000", repository="app"
    )

    with pytest.raises(RegistryCallError, match="wrong version number"):
        client.list_tags(source, deadline=Deadline.none())
    assert {url.scheme for url in urls} == {"https"}


def test_bearer_token_is_reused_across_digest_lookups(source: RegistrySource) -> None:
    token_requests: list[httpx.Request] = []
    registry_requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "auth.example.com":
            token_requests.append(request)
            return httpx.Response(200, json={"token": "t0k3n"})
        registry_requests.append(request)
        if request.headers.get("Authorization") != "Bearer t0k3n":
            return httpx.Response(401, headers={"WWW-Authenticate": TOKEN_CHALLENGE})
        tag = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, headers={"Docker-Content-Digest": digest_of(tag)})

    client = DistributionRegistryClient(
        credentials=_credentials, client_factory=make_client_factory(handler)
    )

    digests = [
        client.resolve_digest(source, tag, deadline=Deadline.none()) for tag in ("v1", "v2", "v3")
    ]

    assert digests == [digest_of("v1"), digest_of("v2"), digest_of("v3")]
    assert len(token_requests) == 1
    assert len(registry_requests) == 4


def test_rotated_credentials_start_a_new_auth_session(source: RegistrySource) -> None:
    token_requests: list[httpx.Request] = []
    passwords = iter(["old", "new"])

    def rotating(reference: str | None) -> RegistryCredentials | None:
        _ = reference
        return RegistryCredentials(username="robot", password=next(passwords))

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "auth.example.com":
            token_requests.append(request)
            return httpx.Response(200, json={"token": f"t{len(token_requests)}"})
        if request.headers.get("Authorization") is None:
            return httpx.Response(401, headers={"WWW-Authenticate": TOKEN_CHALLENGE})
        return httpx.Response(200, headers={"Docker-Content-Digest": digest_of("v1")})

    client = DistributionRegistryClient(
        credentials=rotating, client_factory=make_client_factory(handler)
    )

    client.resolve_digest(source, "v1", deadline=Deadline.none())
    client.resolve_digest(source, "v1", deadline=Deadline.none())

    assert len(token_requests) == 2


def test_invalid_listed_tags_are_rejected_before_any_request(source: RegistrySource) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, headers={"Docker-Content-Digest": digest_of("x")})

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    with pytest.raises(RegistryCallError, match="invalid tag") as exc:
        client.resolve_digest(source, "../../blobs", deadline=Deadline.none())
    assert exc.value.tag == "../../blobs"
    assert requests == []


def test_expired_deadline_skips_the_request(source: RegistrySource) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"name": "team/web", "tags": []})

    client = DistributionRegistryClient(client_factory=make_client_factory(handler))

    with pytest.raises(DeadlineExceededError):
        client.list_tags(source, deadline=Deadline(expires_at=0.0, clock=lambda: 1.0))
    assert requests == []
