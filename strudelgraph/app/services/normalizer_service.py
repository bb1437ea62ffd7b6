from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import math

from pydantic import ValidationError

from strudelgraph.app.models.graph import Connection, NodeInstance, PatternGraph, PropertyValue
from strudelgraph.app.models.node_schema import NodeCategory, NodeTypeSpec
from strudelgraph.app.models.normalization import (
    Chain,
    CollapseRule,
    ErrorKind,
    FanOutPolicy,
    NormalizationMetadata,
    NormalizationResult,
    NormalizationRules,
    WrappedChain,
)
from strudelgraph.app.services.node_schema_service import NodeSchemaService
from strudelgraph.app.services.normalization_errors import (
    CycleDetectedError,
    MalformedPropertiesError,
    NormalizationError,
    UnsupportedFanOutError,
)
from strudelgraph.app.services.pattern_emitter import PatternEmitter
from strudelgraph.app.services.structural_merge import StructuralMergeRegistry

logger = logging.getLogger(__name__)

CYCLE_ERROR_MESSAGE = "Graph contains cycles - must be a directed acyclic graph"


@dataclass(slots=True)
class NormalizationContext:
    diagnostics: list[str] = field(default_factory=list)
    stranded_node_ids: list[str] = field(default_factory=list)
    skipped_chain_roots: list[str] = field(default_factory=list)
    dropped_connections: list[str] = field(default_factory=list)
    missing_types: set[str] = field(default_factory=set)


class NormalizerService:
    """Compiles an editor graph into one canonical Strudel pattern expression.

    The pipeline is strictly sequential: prune and validate, linearize chains,
    resolve structural merges, sort effects by stage, lift wrappers, collapse
    redundant properties, emit code. Every call works on its own copies, so a
    single instance can be shared between threads.
    """

    def __init__(
        self,
        node_schema_service: NodeSchemaService,
        rules: NormalizationRules | None = None,
        merge_registry: StructuralMergeRegistry | None = None,
    ) -> None:
        self._node_schema_service = node_schema_service
        self._rules = rules or NormalizationRules()
        self._merge_registry = merge_registry or StructuralMergeRegistry()
        self._emitter = PatternEmitter(node_schema_service, self._rules)

    @property
    def rules(self) -> NormalizationRules:
        return self._rules

    def normalize_graph(self, graph: PatternGraph | Mapping[str, object]) -> NormalizationResult:
        context = NormalizationContext()
        try:
            pattern_graph = graph if isinstance(graph, PatternGraph) else PatternGraph.model_validate(graph)
            pruned = self.prune_and_validate(pattern_graph, context)
            chains = self.linearize_chains(pruned, context)
            chains = self.resolve_structural_merges(chains, context)
            chains = self.sort_effects_by_stage(chains, context)
            lifted = self.lift_wrappers(chains, context)
            collapsed = self.collapse_redundancies(lifted)
            code, metadata = self.emit_canonical_code(collapsed, context)
        except NormalizationError as err:
            logger.info("Graph normalization failed (%s): %s", err.kind, err)
            return self._failure(str(err), err.kind)
        except ValidationError as err:
            logger.info("Graph payload rejected: %s", err)
            return self._failure(f"Invalid graph payload: {err}", ErrorKind.INVALID_GRAPH)
        except Exception as err:
            logger.exception("Unexpected error while normalizing graph")
            return self._failure(str(err) or type(err).__name__, ErrorKind.INTERNAL_ERROR)

        return NormalizationResult(success=True, code=code, metadata=metadata, chains=collapsed)

    # Step 1
    def prune_and_validate(self, graph: PatternGraph, context: NormalizationContext) -> PatternGraph:
        node_ids = {node.id for node in graph.nodes}
        connections: list[Connection] = []
        seen_edges: set[tuple[str, str]] = set()
        for connection in graph.connections:
            edge = (connection.source_node_id, connection.target_node_id)
            if connection.source_node_id not in node_ids or connection.target_node_id not in node_ids:
                context.diagnostics.append(
                    f"Connection '{edge[0]}' -> '{edge[1]}' references an unknown node and was ignored."
                )
                continue
            if edge in seen_edges:
                continue
            seen_edges.add(edge)
            connections.append(connection)

        reachable = self._find_reachable_nodes(graph.nodes, connections)
        connected = {node_id for edge in seen_edges for node_id in edge}
        pruned_nodes = [node for node in graph.nodes if node.id in reachable and node.id in connected]
        if len(pruned_nodes) != len(graph.nodes):
            logger.debug("Pruned %d orphan node(s)", len(graph.nodes) - len(pruned_nodes))

        self._validate_acyclic(pruned_nodes, connections)

        pruned_ids = {node.id for node in pruned_nodes}
        return PatternGraph(
            nodes=pruned_nodes,
            connections=[
                connection
                for connection in connections
                if connection.source_node_id in pruned_ids and connection.target_node_id in pruned_ids
            ],
        )

    # Step 2
    def linearize_chains(self, graph: PatternGraph, context: NormalizationContext) -> list[Chain]:
        node_map = {node.id: node for node in graph.nodes}
        outgoing = self._build_adjacency(graph.nodes, graph.connections)
        targets = {connection.target_node_id for connection in graph.connections}

        processed: set[str] = set()
        chained_edges: set[tuple[str, str]] = set()
        chains: list[Chain] = []
        for root in graph.nodes:
            if root.id in targets or root.id in processed:
                continue
            chain_nodes = self._build_linear_chain(root, node_map, outgoing, processed)
            chained_edges.update((left.id, right.id) for left, right in zip(chain_nodes, chain_nodes[1:]))
            if not self._resolve_type(root, context).is_source:
                context.skipped_chain_roots.append(root.id)
                context.diagnostics.append(
                    f"Chain starting at node '{root.id}' ({root.type}) has no source node and was skipped."
                )
                continue
            chains.append(Chain(nodes=tuple(chain_nodes)))

        stranded = [node.id for node in graph.nodes if node.id not in processed]
        dropped = [
            f"'{connection.source_node_id}' -> '{connection.target_node_id}'"
            for connection in graph.connections
            if connection.target_node_id in processed
            and (connection.source_node_id, connection.target_node_id) not in chained_edges
        ]

        messages: list[str] = []
        if stranded:
            messages.append(
                "Nodes not reached by any linear chain (fan-out branches): "
                + ", ".join(f"'{node_id}'" for node_id in stranded)
            )
        if dropped:
            messages.append("Connections merging into an already chained node were dropped: " + ", ".join(dropped))
        if not messages:
            return chains

        if self._rules.fan_out_policy == FanOutPolicy.REJECT:
            raise UnsupportedFanOutError(messages)
        for message in messages:
            logger.warning(message)
        context.stranded_node_ids.extend(stranded)
        context.dropped_connections.extend(dropped)
        context.diagnostics.extend(messages)
        return chains

    # Step 3
    def resolve_structural_merges(self, chains: list[Chain], context: NormalizationContext) -> list[Chain]:
        resolved: list[Chain] = []
        for chain in chains:
            structural_nodes = [
                node
                for node in chain.nodes
                if self._resolve_type(node, context).category == NodeCategory.STRUCTURAL
            ]
            if structural_nodes:
                chain = self._merge_registry.resolve(chain, structural_nodes)
            resolved.append(chain)
        return resolved

    # Step 4
    def sort_effects_by_stage(self, chains: list[Chain], context: NormalizationContext) -> list[Chain]:
        sorted_chains: list[Chain] = []
        for chain in chains:
            if chain.source is None:
                sorted_chains.append(chain)
                continue
            # sorted() is stable, so equal stages keep their authoring order.
            effects = sorted(chain.effects, key=lambda node: self._stage_priority(node, context))
            sorted_chains.append(Chain(nodes=(chain.source, *effects)))
        return sorted_chains

    # Step 5
    def lift_wrappers(self, chains: list[Chain], context: NormalizationContext) -> list[Chain | WrappedChain]:
        lifted: list[Chain | WrappedChain] = []
        for chain in chains:
            wrapper_positions = [
                index
                for index, node in enumerate(chain.nodes)
                if index > 0 and self._resolve_type(node, context).wraps
            ]
            if not wrapper_positions:
                lifted.append(chain)
                continue

            position = wrapper_positions[-1]
            wrapper = chain.nodes[position]
            trailing = chain.nodes[position + 1 :]
            if trailing:
                message = (
                    f"Nodes after wrapper '{wrapper.id}' were dropped: "
                    + ", ".join(f"'{node.id}'" for node in trailing)
                )
                logger.warning(message)
                context.diagnostics.append(message)
            lifted.append(
                WrappedChain(
                    wrapper=wrapper,
                    inner_chain=Chain(nodes=chain.nodes[: position + 1]),
                    outer_chain=Chain(nodes=(wrapper,)),
                )
            )
        return lifted

    # Step 6
    def collapse_redundancies(self, chains: list[Chain | WrappedChain]) -> list[Chain | WrappedChain]:
        collapsed: list[Chain | WrappedChain] = []
        for chain in chains:
            if isinstance(chain, WrappedChain):
                collapsed.append(
                    chain.model_copy(
                        update={
                            "inner_chain": self.collapse_chain(chain.inner_chain),
                            "outer_chain": self.collapse_chain(chain.outer_chain),
                        }
                    )
                )
            else:
                collapsed.append(self.collapse_chain(chain))
        return collapsed

    def collapse_chain(self, chain: Chain) -> Chain:
        if len(chain.nodes) <= 1:
            return chain

        grouped: dict[str, list[PropertyValue]] = {}
        for node in chain.effects:
            for name, value in self._pattern_properties(node).items():
                grouped.setdefault(name, []).append(self._checked_value(node, name, value))

        merged: dict[str, PropertyValue] = {}
        for name, values in grouped.items():
            if self._rules.rule_for(name) == CollapseRule.MULTIPLY:
                merged[name] = self._multiply(name, values)
            else:
                merged[name] = values[-1]

        merged = {name: value for name, value in merged.items() if not self._is_neutral(name, value)}
        if not merged:
            return Chain(nodes=(chain.nodes[0],))

        collapsed_node = chain.nodes[-1].model_copy(update={"properties": {self._rules.properties_key: merged}})
        return Chain(nodes=(chain.nodes[0], collapsed_node))

    # Step 7
    def emit_canonical_code(
        self,
        chains: list[Chain | WrappedChain],
        context: NormalizationContext,
    ) -> tuple[str, NormalizationMetadata]:
        code = self._emitter.render(chains)
        metadata = NormalizationMetadata(
            input_chains=len(chains),
            output_pattern=code,
            rules_applied=list(self._rules.collapse_rules),
            timestamp=datetime.now(timezone.utc).isoformat(),
            diagnostics=list(context.diagnostics),
            stranded_node_ids=list(context.stranded_node_ids),
            skipped_chain_roots=list(context.skipped_chain_roots),
            dropped_connections=list(context.dropped_connections),
        )
        return code, metadata

    @staticmethod
    def _failure(message: str, kind: ErrorKind) -> NormalizationResult:
        return NormalizationResult(
            success=False,
            error=message,
            error_kind=kind,
            code="",
            metadata=None,
            chains=[],
        )

    def _resolve_type(self, node: NodeInstance, context: NormalizationContext) -> NodeTypeSpec:
        node_type = self._node_schema_service.get_node_type(node.type)
        if node_type is not None:
            return node_type

        if node.type not in context.missing_types:
            context.missing_types.add(node.type)
            logger.warning("Node type '%s' is not in the node schema; using defaults", node.type)
            context.diagnostics.append(
                f"Node '{node.id}' references unknown type '{node.type}'; default stage priority "
                f"{self._rules.default_stage_priority} applied."
            )
        return NodeSchemaService.fallback_node_type(node.type)

    def _stage_priority(self, node: NodeInstance, context: NormalizationContext) -> int:
        return self._rules.stage_priority(self._resolve_type(node, context).execution.stage)

    def _pattern_properties(self, node: NodeInstance) -> dict[str, object]:
        raw = node.properties.get(self._rules.properties_key, {})
        if not isinstance(raw, dict):
            raise MalformedPropertiesError(
                [f"Node '{node.id}' has '{self._rules.properties_key}' that is not a mapping."]
            )
        return raw

    @staticmethod
    def _checked_value(node: NodeInstance, name: str, value: object) -> PropertyValue:
        if isinstance(value, (str, int, float, bool)):
            return value
        raise MalformedPropertiesError(
            [f"Property '{name}' on node '{node.id}' must be a string, number or boolean, got {value!r}."]
        )

    @staticmethod
    def _multiply(name: str, values: list[PropertyValue]) -> int | float:
        product: int | float = 1
        for value in values:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MalformedPropertiesError(
                    [f"Property '{name}' is combined by multiplication but got non-numeric value {value!r}."]
                )
            product *= value
        return product

    def _is_neutral(self, name: str, value: PropertyValue) -> bool:
        if name not in self._rules.neutral_values:
            return False
        neutral = self._rules.neutral_values[name]
        # bool is an int subclass; never match it against a numeric neutral.
        if isinstance(value, bool) != isinstance(neutral, bool):
            return False
        if self._is_number(value) and self._is_number(neutral):
            return math.isclose(float(value), float(neutral), rel_tol=1e-9, abs_tol=1e-12)
        return value == neutral

    @staticmethod
    def _is_number(value: object) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool)

    @staticmethod
    def _build_adjacency(nodes: list[NodeInstance], connections: list[Connection]) -> dict[str, list[str]]:
        adjacency: dict[str, list[str]] = {node.id: [] for node in nodes}
        for connection in connections:
            if connection.source_node_id in adjacency and connection.target_node_id in adjacency:
                adjacency[connection.source_node_id].append(connection.target_node_id)
        return adjacency

    def _find_reachable_nodes(self, nodes: list[NodeInstance], connections: list[Connection]) -> set[str]:
        adjacency = self._build_adjacency(nodes, connections)
        reachable: set[str] = set()
        for node in nodes:
            pending = [node.id]
            while pending:
                node_id = pending.pop()
                if node_id in reachable:
                    continue
                reachable.add(node_id)
                pending.extend(adjacency[node_id])
        return reachable

    def _validate_acyclic(self, nodes: list[NodeInstance], connections: list[Connection]) -> None:
        adjacency = self._build_adjacency(nodes, connections)
        visited: set[str] = set()
        for start in nodes:
            if start.id in visited:
                continue
            visited.add(start.id)
            on_stack = {start.id}
            stack = [(start.id, iter(adjacency[start.id]))]
            while stack:
                node_id, pending_targets = stack[-1]
                for target in pending_targets:
                    if target in on_stack:
                        raise CycleDetectedError(
                            [f"{CYCLE_ERROR_MESSAGE} (edge '{node_id}' -> '{target}' closes a cycle)."]
                        )
                    if target not in visited:
                        visited.add(target)
                        on_stack.add(target)
                        stack.append((target, iter(adjacency[target])))
                        break
                else:
                    stack.pop()
                    on_stack.discard(node_id)

    @staticmethod
    def _build_linear_chain(
        root: NodeInstance,
        node_map: dict[str, NodeInstance],
        outgoing: dict[str, list[str]],
        processed: set[str],
    ) -> list[NodeInstance]:
        chain = [root]
        processed.add(root.id)
        current = root
        while True:
            next_id = next((target for target in outgoing[current.id] if target not in processed), None)
            if next_id is None:
                break
            current = node_map[next_id]
            chain.append(current)
            processed.add(next_id)
        return chain
