from __future__ import annotations

from dataclasses import dataclass, field
import json
import math
import re

from strudelgraph.app.models.graph import NodeInstance, PropertyValue
from strudelgraph.app.models.node_schema import NodeTypeSpec
from strudelgraph.app.models.normalization import Chain, NormalizationRules, WrappedChain
from strudelgraph.app.services.node_schema_service import NodeSchemaService
from strudelgraph.app.services.normalization_errors import MalformedPropertiesError

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")


@dataclass(slots=True)
class SourceCall:
    function: str
    argument: PropertyValue

    def render(self) -> str:
        return f"{checked_identifier(self.function)}({format_literal(self.argument)})"


@dataclass(slots=True)
class MethodCall:
    name: str
    argument: PropertyValue

    def render(self) -> str:
        return f".{checked_identifier(self.name)}({format_literal(self.argument)})"


@dataclass(slots=True)
class ChainExpression:
    source: SourceCall
    transforms: list[MethodCall] = field(default_factory=list)

    def render(self) -> str:
        return self.source.render() + "".join(transform.render() for transform in self.transforms)


@dataclass(slots=True)
class WrapperExpression:
    function: str
    inner: ChainExpression

    def render(self) -> str:
        return f"{checked_identifier(self.function)}({self.inner.render()})"


@dataclass(slots=True)
class ParallelExpression:
    parts: list[ChainExpression | WrapperExpression] = field(default_factory=list)

    def render(self) -> str:
        return " ".join(part.render() for part in self.parts)


def checked_identifier(name: str) -> str:
    if not IDENTIFIER_PATTERN.fullmatch(name):
        raise MalformedPropertiesError([f"'{name}' is not a valid function or method name."])
    return name


def format_literal(value: PropertyValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise MalformedPropertiesError([f"Non-finite value '{value}' cannot be emitted."])
        if value.is_integer():
            return str(int(value))
        return f"{value:.10g}"
    if isinstance(value, str):
        return json.dumps(value)
    raise MalformedPropertiesError([f"Unsupported literal value '{value!r}'."])


class PatternEmitter:
    """Builds expression trees from finalized chains and renders them as Strudel code."""

    def __init__(self, node_schema: NodeSchemaService, rules: NormalizationRules) -> None:
        self._node_schema = node_schema
        self._rules = rules

    def build(self, chains: list[Chain | WrappedChain]) -> ParallelExpression:
        parts: list[ChainExpression | WrapperExpression] = []
        for chain in chains:
            if isinstance(chain, WrappedChain):
                parts.append(self._wrapper_expression(chain))
            else:
                parts.append(self._chain_expression(chain))
        return ParallelExpression(parts=parts)

    def render(self, chains: list[Chain | WrappedChain]) -> str:
        return self.build(chains).render()

    def _wrapper_expression(self, chain: WrappedChain) -> WrapperExpression:
        wrapper_type = self._node_type(chain.wrapper)
        return WrapperExpression(function=wrapper_type.method, inner=self._chain_expression(chain.inner_chain))

    def _chain_expression(self, chain: Chain) -> ChainExpression:
        if chain.source is None:
            raise MalformedPropertiesError(["Cannot emit code for an empty chain."])

        expression = ChainExpression(source=self._source_call(chain.source))
        for node in chain.effects:
            for name, value in self._pattern_properties(node).items():
                expression.transforms.append(MethodCall(name=name, argument=value))
        return expression

    def _source_call(self, node: NodeInstance) -> SourceCall:
        node_type = self._node_type(node)
        properties = self._pattern_properties(node)
        argument = node_type.default_argument
        if node_type.argument_property and node_type.argument_property in properties:
            argument = properties[node_type.argument_property]
        if argument is None:
            raise MalformedPropertiesError(
                [f"Source node '{node.id}' ({node.type}) has no identifying argument."]
            )
        return SourceCall(function=node_type.method, argument=argument)

    def _node_type(self, node: NodeInstance) -> NodeTypeSpec:
        return self._node_schema.get_node_type(node.type) or NodeSchemaService.fallback_node_type(node.type)

    def _pattern_properties(self, node: NodeInstance) -> dict[str, PropertyValue]:
        raw = node.properties.get(self._rules.properties_key, {})
        if not isinstance(raw, dict):
            raise MalformedPropertiesError(
                [f"Node '{node.id}' has '{self._rules.properties_key}' that is not a mapping."]
            )
        return raw
