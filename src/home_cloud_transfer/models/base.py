"""Base Pydantic model configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class AppModel(BaseModel):
    """Base model with strict-ish, safe defaults."""

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        validate_default=True,
        validate_assignment=True,
    )


class WireModel(AppModel):
    """Model exchanged as camelCase JSON (HTTP surface, snapshots, remote API)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class RemoteModel(WireModel):
    """Model parsed from remote responses; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")
