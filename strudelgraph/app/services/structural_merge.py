from __future__ import annotations

from typing import Protocol

from strudelgraph.app.models.graph import NodeInstance
from strudelgraph.app.models.normalization import Chain


class StructuralMergeStrategy(Protocol):
    def merge(self, chain: Chain, node: NodeInstance) -> Chain: ...


class PassThroughMerge:
    """Leaves the chain untouched; multi-input combining is not modelled yet."""

    def merge(self, chain: Chain, node: NodeInstance) -> Chain:
        return chain


class StructuralMergeRegistry:
    def __init__(
        self,
        strategies: dict[str, StructuralMergeStrategy] | None = None,
        default: StructuralMergeStrategy | None = None,
    ) -> None:
        self._strategies = dict(strategies or {})
        self._default = default or PassThroughMerge()

    def register(self, node_type: str, strategy: StructuralMergeStrategy) -> None:
        self._strategies[node_type] = strategy

    def strategy_for(self, node_type: str) -> StructuralMergeStrategy:
        return self._strategies.get(node_type, self._default)

    def resolve(self, chain: Chain, structural_nodes: list[NodeInstance]) -> Chain:
        for node in structural_nodes:
            chain = self.strategy_for(node.type).merge(chain, node)
        return chain
