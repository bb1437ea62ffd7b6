from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, JsonValue
from pydantic.alias_generators import to_camel


class NodeCategory(StrEnum):
    SOURCE = "source"
    STRUCTURAL = "structural"
    RHYTHMIC = "rhythmic"
    PITCH = "pitch"
    MODULATION = "modulation"
    SPECTRAL = "spectral"
    SPACE = "space"
    WRAPPER = "wrapper"


class ExecutionSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: str = NodeCategory.MODULATION.value
    wraps: bool = False


class NodeTypeSpec(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(min_length=1)
    category: NodeCategory
    execution: ExecutionSpec = Field(default_factory=ExecutionSpec)
    # Call name for sources and lifted wrappers. Effects emit one method per pattern property, named by the property.
    method: str = Field(min_length=1)
    argument_property: str | None = None
    default_argument: JsonValue = None
    description: str = ""
    tags: tuple[str, ...] = ()

    @property
    def is_source(self) -> bool:
        return self.category == NodeCategory.SOURCE

    @property
    def wraps(self) -> bool:
        return self.execution.wraps


class NodeSchemaDocument(BaseModel):
    """On-disk shape of a node schema file: ``{"nodes": {TypeName: NodeTypeSpec}}``."""

    nodes: dict[str, NodeTypeSpec] = Field(default_factory=dict)
