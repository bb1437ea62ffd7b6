from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator, model_validator
from pydantic.alias_generators import to_camel

PropertyValue = str | int | float | bool

MAX_GRAPH_NODES = 500
MAX_GRAPH_CONNECTIONS = 2_000


class GraphRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NodePosition(GraphRecord):
    x: float = 0.0
    y: float = 0.0


class NodeInstance(GraphRecord):
    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    properties: dict[str, JsonValue] = Field(default_factory=dict)
    position: NodePosition | None = None


class Connection(GraphRecord):
    source_node_id: str = Field(min_length=1)
    target_node_id: str = Field(min_length=1)


class PatternGraph(GraphRecord):
    nodes: list[NodeInstance] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)

    @field_validator("nodes")
    @classmethod
    def validate_node_count(cls, nodes: list[NodeInstance]) -> list[NodeInstance]:
        if len(nodes) > MAX_GRAPH_NODES:
            raise ValueError(f"Graph exceeds maximum node count ({MAX_GRAPH_NODES})")
        return nodes

    @field_validator("connections")
    @classmethod
    def validate_connection_count(cls, connections: list[Connection]) -> list[Connection]:
        if len(connections) > MAX_GRAPH_CONNECTIONS:
            raise ValueError(f"Graph exceeds maximum connection count ({MAX_GRAPH_CONNECTIONS})")
        return connections

    @model_validator(mode="after")
    def validate_unique_node_ids(self) -> "PatternGraph":
        ids = [node.id for node in self.nodes]
        if len(ids) != len(set(ids)):
            raise ValueError("Node IDs must be unique")
        return self
