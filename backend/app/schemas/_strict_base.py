"""Strict schema baselines with forbidden extras by default."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Response DTO base; reads ORM attributes directly."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, from_attributes=True)


class StrictRequestModel(BaseModel):
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, str_strip_whitespace=True)


class CommandModel(BaseModel):
    """Immutable service command; built by routes from the request and the caller."""

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)
