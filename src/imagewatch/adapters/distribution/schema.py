"""Minimal Pydantic models for the distribution-spec registry API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DistributionBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class TagList(DistributionBaseModel):
    name: str | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _null_as_empty(cls, value: object) -> object:
        return [] if value is None else value


class RegistryErrorDetail(DistributionBaseModel):
    code: str | None = None
    message: str | None = None


class RegistryErrorResponse(DistributionBaseModel):
    errors: list[RegistryErrorDetail] = Field(default_factory=list)

    def summary(self) -> str:
        return "; ".join(
            f"{error.code or 'UNKNOWN'}: {error.message or ''}".strip() for error in self.errors
        )
