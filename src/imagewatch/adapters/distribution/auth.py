"""httpx authentication flow for distribution-spec registries.

Registries answer an unauthenticated request with ``401`` and a
``WWW-Authenticate`` challenge. A ``Basic`` challenge is answered with the
configured credentials; a ``Bearer`` challenge names a token endpoint
(``realm``) plus ``service``/``scope`` parameters, and the token obtained there
is replayed on the original request and every later one made with this auth.
"""

from __future__ import annotations

import base64
import re
from logging import getLogger
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from collections.abc import Generator

    from imagewatch.domain.model import RegistryCredentials

log = getLogger(__name__)

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


class TokenRequestError(httpx.HTTPError):
    """Raised when the registry token endpoint refuses to issue a token."""

    def __init__(self, message: str, *, response: httpx.Response) -> None:
        super().__init__(message)
        self.response = response


def parse_challenge(header: str) -> tuple[str, dict[str, str]] | None:
    """Split a ``WWW-Authenticate`` header into its lower-cased scheme and parameters.

    >>> parse_challenge('Bearer realm="https://auth.example.com/token",service="registry"')
    ('bearer', {'realm': 'https://auth.example.com/token', 'service': 'registry'})
    """

    header = header.strip()
    if not header:
        return None
    scheme, _, remainder = header.partition(" ")
    params = {key.lower(): value for key, value in _CHALLENGE_PARAM.findall(remainder)}
    return scheme.lower(), params


def basic_authorization(credentials: RegistryCredentials) -> str:
    raw = f"{credentials.username}:{credentials.password}".encode()
    return f"Basic {base64.b64encode(raw).decode('ascii')}"


class RegistryAuth(httpx.Auth):
    requires_response_body = True

    def __init__(self, credentials: RegistryCredentials | None, *, scope: str) -> None:
        self._credentials = credentials
        self._scope = scope
        self._authorization: str | None = None

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self._authorization is not None:
            request.headers["Authorization"] = self._authorization
        response = yield request
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return

        challenge = parse_challenge(response.headers.get("WWW-Authenticate", ""))
        if challenge is None:
            return
        scheme, params = challenge
        if scheme == "basic":
            if self._credentials is None:
                return
            self._authorization = basic_authorization(self._credentials)
        elif scheme == "bearer" and "realm" in params:
            token_response = yield self._token_request(params)
            self._authorization = f"Bearer {self._read_token(token_response)}"
        else:
            log.warning(f"Unsupported registry auth challenge: {scheme}")
            return

        request.headers["Authorization"] = self._authorization
        yield request

    def _token_request(self, params: dict[str, str]) -> httpx.Request:
        query: dict[str, str] = {"scope": params.get("scope") or self._scope}
        if "service" in params:
            query["service"] = params["service"]
        headers: dict[str, str] = {}
        if self._credentials is not None:
            headers["Authorization"] = basic_authorization(self._credentials)
        log.debug(f"Requesting registry token from {params['realm']} for {query['scope']}")
        return httpx.Request("GET", params["realm"], params=query, headers=headers)

    @staticmethod
    def _read_token(response: httpx.Response) -> str:
        if response.status_code != httpx.codes.OK:
            raise TokenRequestError(
                f"Token endpoint returned HTTP {response.status_code}", response=response
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenRequestError("Token endpoint returned invalid JSON", response=response) from exc
        if not isinstance(payload, dict):
            raise TokenRequestError("Token endpoint returned an unexpected payload", response=response)
        token = payload.get("token") or payload.get("access_token")
        if not token:
            raise TokenRequestError("Token endpoint returned no token", response=response)
        return str(token)
