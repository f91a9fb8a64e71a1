"""Pydantic views of the ECR responses the reconciler reads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EcrBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ImageIdentifier(EcrBaseModel):
    image_digest: str | None = Field(default=None, alias="imageDigest")
    image_tag: str | None = Field(default=None, alias="imageTag")


class ListImagesPage(EcrBaseModel):
    image_ids: list[ImageIdentifier] = Field(default_factory=list, alias="imageIds")
    next_token: str | None = Field(default=None, alias="nextToken")


class ImageDetail(EcrBaseModel):
    image_digest: str | None = Field(default=None, alias="imageDigest")
    image_tags: list[str] = Field(default_factory=list, alias="imageTags")


class DescribeImagesResponse(EcrBaseModel):
    image_details: list[ImageDetail] = Field(default_factory=list, alias="imageDetails")
