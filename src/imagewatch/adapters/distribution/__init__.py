"""Distribution-spec registry adapter package."""

from __future__ import annotations

from .auth import RegistryAuth, TokenRequestError, parse_challenge
from .client import DEFAULT_PAGE_SIZE, MANIFEST_MEDIA_TYPES, DistributionRegistryClient
from .schema import RegistryErrorResponse, TagList

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MANIFEST_MEDIA_TYPES",
    "DistributionRegistryClient",
    "RegistryAuth",
    "RegistryErrorResponse",
    "TagList",
    "TokenRequestError",
    "parse_challenge",
]
