from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from strudelgraph.app.models.graph import NodeInstance, PropertyValue
from strudelgraph.app.models.node_schema import NodeCategory

DEFAULT_PROPERTIES_KEY = "strudelProperties"
DEFAULT_STAGE_PRIORITY = 50


class CollapseRule(StrEnum):
    MULTIPLY = "multiply"
    LAST = "last"


class FanOutPolicy(StrEnum):
    FLAG = "flag"
    REJECT = "reject"


class ErrorKind(StrEnum):
    CYCLE_DETECTED = "CycleDetected"
    SCHEMA_LOOKUP_MISSING = "SchemaLookupMissing"
    MALFORMED_PROPERTIES = "MalformedProperties"
    UNSUPPORTED_FAN_OUT = "UnsupportedFanOut"
    INVALID_GRAPH = "InvalidGraph"
    INTERNAL_ERROR = "InternalError"


def _default_collapse_rules() -> dict[str, CollapseRule]:
    return {
        "gain": CollapseRule.MULTIPLY,
        "speed": CollapseRule.MULTIPLY,
        "pan": CollapseRule.LAST,
        "lpf": CollapseRule.LAST,
        "hpf": CollapseRule.LAST,
        "bpf": CollapseRule.LAST,
        "delay": CollapseRule.LAST,
    }


def _default_neutral_values() -> dict[str, PropertyValue]:
    return {
        "gain": 1,
        "pan": 0,
        "delay": 0,
        "speed": 1,
        "lpf": 8000,
        "hpf": 20,
        "bpf": 1000,
    }


def _default_stage_priorities() -> dict[str, int]:
    return {
        NodeCategory.SOURCE.value: 10,
        NodeCategory.STRUCTURAL.value: 20,
        NodeCategory.RHYTHMIC.value: 30,
        NodeCategory.PITCH.value: 40,
        NodeCategory.MODULATION.value: 50,
        NodeCategory.SPECTRAL.value: 60,
        NodeCategory.SPACE.value: 70,
        NodeCategory.WRAPPER.value: 80,
    }


class NormalizationRules(BaseModel):
    """Immutable rule table handed to the normalizer at construction time."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    collapse_rules: dict[str, CollapseRule] = Field(default_factory=_default_collapse_rules)
    neutral_values: dict[str, PropertyValue] = Field(default_factory=_default_neutral_values)
    stage_priorities: dict[str, int] = Field(default_factory=_default_stage_priorities)
    default_stage_priority: int = DEFAULT_STAGE_PRIORITY
    wrapper_policy: Literal["outermost"] = "outermost"
    fan_out_policy: FanOutPolicy = FanOutPolicy.FLAG
    properties_key: str = Field(default=DEFAULT_PROPERTIES_KEY, min_length=1)

    def rule_for(self, property_name: str) -> CollapseRule:
        return self.collapse_rules.get(property_name, CollapseRule.LAST)

    def stage_priority(self, stage: str | None) -> int:
        if stage is None:
            return self.default_stage_priority
        return self.stage_priorities.get(stage, self.default_stage_priority)


class ResultRecord(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Chain(ResultRecord):
    kind: Literal["chain"] = "chain"
    nodes: tuple[NodeInstance, ...] = ()

    @property
    def source(self) -> NodeInstance | None:
        return self.nodes[0] if self.nodes else None

    @property
    def effects(self) -> tuple[NodeInstance, ...]:
        return self.nodes[1:]


class WrappedChain(ResultRecord):
    kind: Literal["wrapped"] = "wrapped"
    wrapper: NodeInstance
    inner_chain: Chain
    outer_chain: Chain


ChainEntry = Annotated[Chain | WrappedChain, Field(discriminator="kind")]


class NormalizationMetadata(ResultRecord):
    input_chains: int
    output_pattern: str
    rules_applied: list[str] = Field(default_factory=list)
    timestamp: str
    diagnostics: list[str] = Field(default_factory=list)
    stranded_node_ids: list[str] = Field(default_factory=list)
    skipped_chain_roots: list[str] = Field(default_factory=list)
    dropped_connections: list[str] = Field(default_factory=list)


class NormalizationResult(ResultRecord):
    success: bool
    code: str = ""
    metadata: NormalizationMetadata | None = None
    chains: list[ChainEntry] = Field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None
