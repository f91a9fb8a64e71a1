"""Amazon ECR adapter package."""

from __future__ import annotations

from .client import EcrApi, EcrRegistryClient, ecr_host, parse_ecr_registry
from .schema import DescribeImagesResponse, ImageIdentifier, ListImagesPage

__all__ = [
    "DescribeImagesResponse",
    "EcrApi",
    "EcrRegistryClient",
    "ImageIdentifier",
    "ListImagesPage",
    "ecr_host",
    "parse_ecr_registry",
]
