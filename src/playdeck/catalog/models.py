"""Catalog domain models.

Defines the data structures produced by catalog parsing and consumed by the
instance store:
- Parameter: One user-facing input of a demo
- DemoDefinition: One launchable playbook or role
- DiscoveredVariable: A variable declared in a role's defaults file
- CatalogConfig: Operator configuration for where the catalog comes from

Definitions are rebuilt on every parse; nothing here has identity beyond the
``id`` string.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class DemoKind(str, Enum):
    """What a catalog entry launches."""

    PLAYBOOK = "playbook"
    ROLE = "role"


class ParameterType(str, Enum):
    """Input widget/value type of a parameter."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"


class Parameter(BaseModel):
    """A single demo parameter.

    ``options`` is present exactly when ``type`` is ``select``.
    """

    name: str = Field(..., min_length=1)
    label: str | None = None
    description: str | None = None
    type: ParameterType = ParameterType.TEXT
    required: bool = False
    options: list[str] | None = None
    default: Any = None

    @model_validator(mode="after")
    def _options_only_for_select(self) -> Parameter:
        if self.type is ParameterType.SELECT and not self.options:
            raise ValueError(f"select parameter {self.name!r} declares no options")
        if self.type is not ParameterType.SELECT and self.options is not None:
            raise ValueError(f"parameter {self.name!r} has options but type {self.type.value!r}")
        return self


class DemoDefinition(BaseModel):
    """A launchable catalog entry."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str | None = None
    kind: DemoKind
    path: str = Field(..., min_length=1)
    parameters: list[Parameter] = Field(default_factory=list)

    def parameter(self, name: str) -> Parameter | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None


class DiscoveredVariable(BaseModel):
    """A variable found in a role's ``defaults/main.yml``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    default_value: Any = None
    label: str | None = None
    description: str | None = None


class CatalogConfig(BaseModel):
    """Operator configuration for the catalog source.

    Serialized with camelCase keys (``collectionName``, ``useLocal``,
    ``executionSandboxImage``).  The older ``repoUrl`` and
    ``executionEnvironment`` keys are accepted on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source: str = ""
    namespace: str = "local"
    collection_name: str = ""
    use_local: bool = False
    execution_sandbox_image: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if "repoUrl" in data and not data.get("source"):
                data["source"] = data.pop("repoUrl")
            if "executionEnvironment" in data and not data.get("executionSandboxImage"):
                data["executionSandboxImage"] = data.pop("executionEnvironment")
        return data


__all__ = [
    "DemoKind",
    "ParameterType",
    "Parameter",
    "DemoDefinition",
    "DiscoveredVariable",
    "CatalogConfig",
]
